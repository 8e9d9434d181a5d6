"""
Positional argument handling shared by the generator and the analyzer.

Both tools take ``file [delay [numAvg [startFreq [sweep|polar]]]]``; each
optional value may only be given when all the ones before it are.
"""

from collections import namedtuple

from toneburst import __version__
from toneburst.errors import UsageError
from toneburst.tone_burst import POLAR, SWEEP

BurstArguments = namedtuple("BurstArguments", ["filename", "delay", "num_avg", "start_freq", "mode"])


def parse_mode(text):
    """Anything starting with 'p' selects polar mode; sweep is the default."""
    return POLAR if text[:1].upper() == "P" else SWEEP


# optional positional values, in the order they must appear
OPTIONAL_FIELDS = (
    ("delay", int),
    ("num_avg", int),
    ("start_freq", float),
    ("mode", parse_mode),
)


def usage(program, file_label):
    return (f"Usage: {program} {file_label} [delay [numAvg [startFreq [sweep|polar]]]]\n"
            f"toneburst {__version__}")


def parse_arguments(argv, program, file_label):
    """
    Parse ``argv`` (without the program name) into BurstArguments.

    The argument count is checked once; values that were not given are left
    as None so the burst sequence keeps its own defaults.
    """
    text = usage(program, file_label)
    if not 1 <= len(argv) <= 1 + len(OPTIONAL_FIELDS):
        raise UsageError(text, f"expected 1 to {1 + len(OPTIONAL_FIELDS)} arguments, got {len(argv)}")

    values = dict.fromkeys(name for name, _ in OPTIONAL_FIELDS)
    for (name, convert), raw in zip(OPTIONAL_FIELDS, argv[1:]):
        try:
            values[name] = convert(raw)
        except ValueError:
            raise UsageError(text, f"invalid {name} value: {raw!r}") from None

    return BurstArguments(filename=argv[0], **values)


def apply_arguments(burst, args):
    """Apply parsed values to a fresh BurstSequence; mode first, since it resets the start frequency."""
    if args.mode is not None:
        burst.init(args.mode)
    if args.start_freq is not None:
        burst.start_freq = args.start_freq
    if args.num_avg is not None:
        burst.num_avg = args.num_avg
    if args.delay is not None:
        burst.delay = args.delay
    return burst
