"""
Path classification.

Decides which paths are primary FASTQ files and reads the run date that
every run name starts with.
"""

from datetime import date

from ngsvault.errors import MalformedRunName

FASTQ_SUFFIX = ".fastq.gz"

# Path fragments marking derived, undetermined or archived copies
EXCLUDED_FRAGMENTS = ("Data", "Undetermined", "Archiv_")


def is_fastq(path: str) -> bool:
    """True for a ``.fastq.gz`` path outside Data, Undetermined and Archiv_ trees."""
    path = str(path)
    if not path.endswith(FASTQ_SUFFIX):
        return False
    return not any(fragment in path for fragment in EXCLUDED_FRAGMENTS)


def parse_run_date(name: str) -> date:
    """
    Read the YYMMDD prefix of a run name.

    Args:
        name: Run name such as ``210802_M70821_0114_000000000-DCWMD``

    Returns:
        The run date, with the two digit year placed in 2000-2099

    Raises:
        MalformedRunName: If the name is shorter than six characters, a
            segment is not numeric, or the date does not exist
    """
    if len(name) < 6:
        raise MalformedRunName(f"Run name too short for a date: {name!r}", path=name)

    segments = (name[0:2], name[2:4], name[4:6])
    if not all(s.isascii() and s.isdigit() for s in segments):
        raise MalformedRunName(f"Run name does not start with YYMMDD: {name!r}", path=name)

    year, month, day = (int(s) for s in segments)
    try:
        return date(2000 + year, month, day)
    except ValueError as e:
        raise MalformedRunName(f"Invalid run date in {name!r}: {e}", path=name) from e
