"""
Marker extraction and anchor splitting for exercise skeletons.

A skeleton marks each editable region with a pair of comment lines:

    # patch <name>
    ...editable lines...
    # endpatch

Students never see these lines. The text around the regions is split into
anchors: literal segments with marker lines removed and trailing blanks
trimmed, which must survive unchanged in whatever the student submits.
"""

import re
from typing import List, Optional

from .models import Region

BEGIN_MARKER_RE = re.compile(r'^.*?#\s*patch\s+([A-Za-z0-9_\-]+).*$', re.IGNORECASE | re.MULTILINE)
END_MARKER_RE = re.compile(r'^.*?#\s*endpatch.*$', re.IGNORECASE | re.MULTILINE)
MARKER_LINE_RE = re.compile(r'#\s*(patch|endpatch)\b', re.IGNORECASE)
TRAILING_BLANKS_RE = re.compile(r'[ \t]+$', re.MULTILINE)


def extract_regions(skeleton: str) -> List[Region]:
    """
    Locate every begin/end marker pair in a skeleton.

    A begin marker without a matching end marker stops extraction: that region
    and everything after it are ignored. When two begin markers appear before
    an end marker, the end marker closes the nearest one.

    Args:
        skeleton: Authored source containing marker lines

    Returns:
        Regions ordered by position
    """
    regions = []
    pos = 0

    while True:
        begin = BEGIN_MARKER_RE.search(skeleton, pos)
        if not begin:
            break

        end = END_MARKER_RE.search(skeleton, begin.end())
        if not end:
            break

        nested = BEGIN_MARKER_RE.search(skeleton, begin.end(), end.start())
        while nested:
            begin = nested
            nested = BEGIN_MARKER_RE.search(skeleton, begin.end(), end.start())

        begin_line_end = begin.end()
        end_line_start = end.start()
        collapsed = end_line_start <= begin_line_end + 1

        if collapsed:
            # No lines between the markers: an inserted body gets its own line
            inner_start = inner_end = begin_line_end
        else:
            inner_start = begin_line_end + 1
            inner_end = end_line_start - 1

        regions.append(Region(
            name=begin.group(1),
            full_start=begin.start(),
            full_end=end.end(),
            inner_start=inner_start,
            inner_end=inner_end,
            inner=skeleton[inner_start:inner_end],
            collapsed=collapsed
        ))
        pos = end.end()

    return regions


def strip_marker_lines(text: str) -> str:
    """Remove every line that carries a patch/endpatch marker."""
    return "\n".join(
        line for line in text.split("\n") if not MARKER_LINE_RE.search(line)
    )


def clean_anchor(segment: str) -> str:
    """Normalize a skeleton segment into an anchor."""
    return TRAILING_BLANKS_RE.sub("", strip_marker_lines(segment))


def split_anchors(skeleton: str, regions: Optional[List[Region]] = None) -> List[str]:
    """
    Split a skeleton into the literal segments that surround its regions.

    Args:
        skeleton: Authored source containing marker lines
        regions: Regions already extracted from the skeleton (extracted if None)

    Returns:
        len(regions) + 1 anchors: before the first region, between each pair,
        and after the last region
    """
    if regions is None:
        regions = extract_regions(skeleton)

    anchors = []
    cursor = 0
    for region in regions:
        anchors.append(clean_anchor(skeleton[cursor:region.full_start]))
        cursor = region.full_end
    anchors.append(clean_anchor(skeleton[cursor:]))
    return anchors


def visible_document(skeleton: str, regions: Optional[List[Region]] = None) -> str:
    """
    Build the marker-free starter text shown to the student.

    Anchors are interleaved with each region's original inner text, so the
    result is exactly what reconciliation expects for an untouched exercise.
    Hosts must seed the editor with this text rather than a plain marker
    strip: a region with no lines between its markers is shown as an empty
    line, which strip_marker_lines would drop.
    """
    if regions is None:
        regions = extract_regions(skeleton)

    anchors = split_anchors(skeleton, regions)
    parts = [anchors[0]]
    for region, anchor in zip(regions, anchors[1:]):
        parts.append(region.inner)
        parts.append(anchor)
    return "".join(parts)
