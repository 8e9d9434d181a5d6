#!/usr/bin/env python3
"""
Tone Burst Analyzer

Analyzes a two channel wave file recorded while playing a generated tone
burst file, one matched filter measurement per burst. Results go to stdout
as tab separated columns; a burst at full generator level reads 0 dB.

    toneburst-analyze infile.wav [delay [numAvg [startFreq [sweep|polar]]]]
"""

import functools
import logging
import sys

from toneburst.burst_args import apply_arguments, parse_arguments
from toneburst.errors import FileOpenError, ToneBurstError, UsageError
from toneburst.tone_burst import DETAIL_COLUMNS, RESULT_COLUMNS, BurstSequence, format_value
from toneburst.wave_header import check_header, read_frames, read_header

LOG_FORMAT = '[TONEBURST] %(asctime)s - %(levelname)s - %(message)s'


def analyze(argv, program="toneburst-analyze", out=None):
    """
    Parse arguments and analyze every burst in the input file.

    Returns the list of BurstResult in burst order. A file that ends before
    the last burst raises StreamTruncatedError; lines already printed stay.
    """
    out = out or sys.stdout
    args = parse_arguments(argv, program, "infile.wav")

    burst = apply_arguments(BurstSequence(), args)
    burst.validate()

    try:
        infile = open(args.filename, 'rb')
    except OSError as e:
        raise FileOpenError("input", args.filename, e.strerror)

    results = []
    with infile:
        header = read_header(infile)
        check_header(header, burst.sample_rate)

        print(f"executable:\t{program}", file=out)
        print(f" arguments:\t{len(argv)}", file=out)
        print(f" file name:\t{args.filename}", file=out)
        for line in header.dump() + burst.setup_lines():
            print(line, file=out)
        print("\t".join(DETAIL_COLUMNS + RESULT_COLUMNS), file=out)

        # discard one delay time before the first burst
        read_frames(infile, burst.delay)
        logging.info(f"Skipped {burst.delay} sample pairs of delay")

        source = functools.partial(read_frames, infile)
        for index in burst.bursts():
            result = burst.read(source)
            results.append(result)
            print("\t".join([burst.detail()] + [format_value(value) for value in result.as_row()]),
                  file=out)
            logging.debug(f"Burst {index + 1}/{burst.num_burst} at {burst.actual_freq:.2f}Hz: "
                          f"{result.db1:.2f}dB / {result.db2:.2f}dB")

    logging.info(f"Analyzed {len(results)} bursts from {args.filename}")
    return results


def main(argv=None):
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)
    if argv is None:
        argv = sys.argv[1:]
    logging.info(f"Command line arguments: {argv}")

    try:
        analyze(argv)
    except UsageError as e:
        logging.error(e.reason)
        print(e.usage, file=sys.stderr)
        sys.exit(e.exit_code)
    except ToneBurstError as e:
        logging.error(str(e))
        sys.exit(e.exit_code)


if __name__ == "__main__":
    main()
