#!/usr/bin/env python3
"""
Tone Burst Generator

Writes a wave file of tone bursts to be played through a device under test
from a point source in free-field conditions. A description of each burst
is printed to stdout, which you should redirect to a text file.

    toneburst-generate outfile.wav [delay [numAvg [startFreq [sweep|polar]]]]
"""

import functools
import logging
import sys

from toneburst.burst_args import apply_arguments, parse_arguments
from toneburst.errors import FileOpenError, ToneBurstError, UsageError
from toneburst.tone_burst import DETAIL_COLUMNS, BurstSequence
from toneburst.wave_header import write_frames, write_header, write_silence

LOG_FORMAT = '[TONEBURST] %(asctime)s - %(levelname)s - %(message)s'


def generate(argv, program="toneburst-generate", out=None):
    """Parse arguments and write the burst file; errors propagate as ToneBurstError."""
    out = out or sys.stdout
    args = parse_arguments(argv, program, "outfile.wav")

    burst = apply_arguments(BurstSequence(), args)
    burst.validate()

    data_size = burst.get_size()
    logging.info(f"Generating {burst.num_burst} bursts in {burst.mode} mode, {data_size} data bytes")

    try:
        outfile = open(args.filename, 'wb')
    except OSError as e:
        raise FileOpenError("output", args.filename, e.strerror)

    with outfile:
        header = write_header(outfile, data_size, burst.sample_rate)

        print(f"executable:\t{program}", file=out)
        print(f" arguments:\t{len(argv)}", file=out)
        print(f" file name:\t{args.filename}", file=out)
        for line in header.dump() + burst.setup_lines():
            print(line, file=out)
        print("\t".join(DETAIL_COLUMNS), file=out)

        # silence for one delay time before the first burst
        write_silence(outfile, burst.delay)

        sink = functools.partial(write_frames, outfile)
        for index in burst.bursts():
            burst.write(sink)
            print(burst.detail(), file=out)
            logging.debug(f"Burst {index + 1}/{burst.num_burst} at {burst.actual_freq:.2f}Hz written")

    logging.info(f"Wrote {args.filename}")


def main(argv=None):
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)
    if argv is None:
        argv = sys.argv[1:]
    logging.info(f"Command line arguments: {argv}")

    try:
        generate(argv)
    except UsageError as e:
        logging.error(e.reason)
        print(e.usage, file=sys.stderr)
        sys.exit(e.exit_code)
    except ToneBurstError as e:
        logging.error(str(e))
        sys.exit(e.exit_code)


if __name__ == "__main__":
    main()
