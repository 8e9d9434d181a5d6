#!/usr/bin/env python3
"""
Wave File Header

Fixed 44 byte header of a two channel, 16 bit PCM wave file: the RIFF
descriptor, the fmt sub-chunk and the data sub-chunk header, always in that
order. Fields are encoded one by one in little-endian byte order, so the
layout does not depend on the host platform. Also holds the frame level
read/write helpers used for the sample stream that follows the header.
"""

import logging
import struct
from collections import namedtuple

import numpy as np

from toneburst.errors import HeaderIOError, StreamTruncatedError, StreamWriteError

NUM_CHANNELS = 2
BYTES_PER_SAMPLE = 2
FRAME_DTYPE = np.dtype("<i2")


class Chunk:
    """Common ID and size prefix shared by every chunk record."""

    layout = struct.Struct("<4sI")
    fields = ()

    def __init__(self, chunk_id, chunk_size):
        self.chunk_id = chunk_id
        self.chunk_size = chunk_size

    @classmethod
    def size(cls):
        return cls.layout.size

    def pack(self):
        return self.layout.pack(self.chunk_id, self.chunk_size,
                                *(getattr(self, name) for name in self.fields))

    @classmethod
    def unpack(cls, data):
        chunk_id, chunk_size, *values = cls.layout.unpack(data)
        chunk = cls.__new__(cls)
        Chunk.__init__(chunk, chunk_id, chunk_size)
        for name, value in zip(cls.fields, values):
            setattr(chunk, name, value)
        return chunk

    def dump(self):
        return [
            f"   chunkID:\t{self.chunk_id.decode('ascii', errors='replace')}",
            f" chunkSize:\t{self.chunk_size}",
        ]

    def __eq__(self, other):
        return type(self) is type(other) and self.pack() == other.pack()

    def __repr__(self):
        return f"{type(self).__name__}({self.chunk_id!r}, {self.chunk_size})"


class RiffChunk(Chunk):
    """RIFF descriptor, 12 bytes."""

    layout = struct.Struct("<4sI4s")
    fields = ("format",)

    def __init__(self, data_size):
        super().__init__(b"RIFF", data_size + 36)
        self.format = b"WAVE"

    def dump(self):
        return super().dump() + [f"    format:\t{self.format.decode('ascii', errors='replace')}"]


class FmtChunk(Chunk):
    """fmt sub-chunk, 24 bytes. Always 16 bit PCM, two channels."""

    layout = struct.Struct("<4sIHHIIHH")
    fields = ("fmt_code", "num_chan", "samp_rate", "byte_rate", "block_align", "bits_samp")

    def __init__(self, sample_rate):
        super().__init__(b"fmt ", 16)
        self.fmt_code = 1
        self.num_chan = NUM_CHANNELS
        self.samp_rate = sample_rate
        self.byte_rate = NUM_CHANNELS * sample_rate * BYTES_PER_SAMPLE
        self.block_align = NUM_CHANNELS * BYTES_PER_SAMPLE
        self.bits_samp = 8 * BYTES_PER_SAMPLE

    def dump(self):
        return super().dump() + [
            f"   fmtCode:\t{self.fmt_code}",
            f"   numChan:\t{self.num_chan}",
            f"  sampRate:\t{self.samp_rate}",
            f"  byteRate:\t{self.byte_rate}",
            f"blockAlign:\t{self.block_align}",
            f"  bitsSamp:\t{self.bits_samp}",
        ]


class DataChunk(Chunk):
    """data sub-chunk header, 8 bytes; the sample data follows it."""

    def __init__(self, data_size):
        super().__init__(b"data", data_size)


class WaveHeader(namedtuple("WaveHeader", ["riff", "fmt", "data"])):
    __slots__ = ()

    SIZE = RiffChunk.size() + FmtChunk.size() + DataChunk.size()

    @classmethod
    def create(cls, data_size, sample_rate):
        return cls(RiffChunk(data_size), FmtChunk(sample_rate), DataChunk(data_size))

    @classmethod
    def unpack(cls, data):
        if len(data) < cls.SIZE:
            raise HeaderIOError(f"Header needs {cls.SIZE} bytes, only {len(data)} available")
        riff_end = RiffChunk.size()
        fmt_end = riff_end + FmtChunk.size()
        return cls(RiffChunk.unpack(data[:riff_end]),
                   FmtChunk.unpack(data[riff_end:fmt_end]),
                   DataChunk.unpack(data[fmt_end:cls.SIZE]))

    def pack(self):
        return b"".join(chunk.pack() for chunk in self)

    def dump(self):
        return [line for chunk in self for line in chunk.dump()]


def write_header(outfile, data_size, sample_rate):
    """Write the three header chunks for ``data_size`` bytes of sample data."""
    header = WaveHeader.create(data_size, sample_rate)
    try:
        outfile.write(header.pack())
    except OSError as e:
        raise HeaderIOError(f"Failed to write header info to disk: {e}") from e
    logging.info(f"Wrote {WaveHeader.SIZE} byte header for {data_size} bytes of sample data")
    return header


def read_header(infile):
    """
    Read the header, assuming the same chunks always appear in the same order.

    No attempt is made to walk optional chunks; see check_header() for the
    sanity checks applied afterwards.
    """
    try:
        data = infile.read(WaveHeader.SIZE)
    except OSError as e:
        raise HeaderIOError(f"Failed to read header info from disk: {e}") from e
    if len(data) < WaveHeader.SIZE:
        raise HeaderIOError("Failed to read header info from disk.")
    header = WaveHeader.unpack(data)
    logging.info(f"Read header: {header.fmt.num_chan} channels, {header.fmt.samp_rate}Hz, "
                 f"{header.data.chunk_size} data bytes")
    return header


def check_header(header, sample_rate):
    """Log a warning for each way the header differs from the layout the analyzer expects."""
    problems = []
    if header.riff.chunk_id != b"RIFF" or header.riff.format != b"WAVE":
        problems.append("not a RIFF/WAVE file")
    if header.fmt.chunk_id != b"fmt " or header.data.chunk_id != b"data":
        problems.append("fmt and data chunks are not where expected")
    if header.fmt.fmt_code != 1:
        problems.append(f"format code {header.fmt.fmt_code} is not linear PCM")
    if header.fmt.num_chan != NUM_CHANNELS or header.fmt.bits_samp != 8 * BYTES_PER_SAMPLE:
        problems.append(f"{header.fmt.num_chan} channels of {header.fmt.bits_samp} bits, "
                        f"expected {NUM_CHANNELS} of {8 * BYTES_PER_SAMPLE}")
    if header.fmt.samp_rate != sample_rate:
        problems.append(f"sample rate {header.fmt.samp_rate}Hz, expected {sample_rate}Hz")

    for problem in problems:
        logging.warning(f"Unexpected wave header: {problem}")
    return problems


def write_frames(outfile, frames):
    """Write interleaved sample pairs, channel 1 then channel 2."""
    try:
        outfile.write(np.asarray(frames, dtype=FRAME_DTYPE).tobytes())
    except OSError as e:
        raise StreamWriteError(f"Failed to write tone bursts to disk: {e}") from e


def write_silence(outfile, count):
    write_frames(outfile, np.zeros((count, NUM_CHANNELS), dtype=FRAME_DTYPE))


def read_frames(infile, count):
    """Read exactly ``count`` sample pairs as an int16 array of shape (count, 2)."""
    nbytes = count * NUM_CHANNELS * BYTES_PER_SAMPLE
    try:
        data = infile.read(nbytes)
    except OSError as e:
        raise StreamTruncatedError(f"Failed to read tone bursts from disk: {e}") from e
    if len(data) < nbytes:
        raise StreamTruncatedError(
            f"Failed to read tone bursts from disk: needed {count} sample pairs, "
            f"only {len(data) // (NUM_CHANNELS * BYTES_PER_SAMPLE)} left")
    return np.frombuffer(data, dtype=FRAME_DTYPE).reshape(count, NUM_CHANNELS)
