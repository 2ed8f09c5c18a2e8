"""
Sample name decomposition.

Sample names embed a DNA number (``21-12345`` or ``D-21-12345``) and a
primer set token (``IGH...``, ``FR1`` ...). These helpers pull them out and
bring DNA numbers into their canonical ``NN-NNNNN`` form.
"""

import re
from typing import Optional

DNA_NR_PATTERN = re.compile(r"(?:D-)?(?P<dnanr>\d\d-\d{3,})")
PRIMER_SET_PATTERN = re.compile(
    r"_(?P<primer>(?:IGH|IGK|FR|DJ|TRD|TRB|TRG).*?)(?:_|$)",
    re.IGNORECASE,
)
STRICT_DNA_NR_PATTERN = re.compile(r"^(?:D-)?\d\d-\d{5}$")


def normalize_dna_nr(value: str) -> Optional[str]:
    """
    Normalize a DNA number to two digits, a dash and five digits.

    ``D-1-345`` becomes ``01-00345``. Returns None when the value is not two
    dash separated numbers.
    """
    value = value.strip()
    if value.startswith("D-"):
        value = value[2:]
    parts = value.split("-")
    if len(parts) != 2:
        return None
    if not all(p.isascii() and p.isdigit() for p in parts):
        return None
    return f"{int(parts[0]):02d}-{int(parts[1]):05d}"


def is_dna_nr(value: str) -> bool:
    """True for ``NN-NNNNN`` or ``D-NN-NNNNN``."""
    return bool(STRICT_DNA_NR_PATTERN.match(value))


def decompose_name(name: str) -> tuple[Optional[str], Optional[str]]:
    """
    Extract the DNA number and primer set from a sample name.

    Spaces count as underscores. Returns ``(dna_nr, primer_set)``, each
    None when absent.
    """
    name = name.replace(" ", "_")

    dna_nr = None
    match = DNA_NR_PATTERN.search(name)
    if match:
        dna_nr = normalize_dna_nr(match.group("dnanr"))

    primer_set = None
    match = PRIMER_SET_PATTERN.search(name)
    if match:
        primer_set = match.group("primer")

    return dna_nr, primer_set
