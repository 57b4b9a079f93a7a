"""
Reconciliation of student documents with skeleton anchors.

The student's marker-free document must be exactly reproducible as

    anchor0 body1 anchor1 body2 ... bodyN anchorN

where the anchors are known literals and the bodies are whatever the student
typed. Bodies are chosen leftmost-shortest, the same choice a non-greedy
regular expression would make, but the search is a single forward pass of
literal searches whose scanned characters count against a step budget.
"""

import logging
from typing import List, Optional, Tuple

from .markers import extract_regions, split_anchors
from .models import Region, Reconciliation, EditableRange
from .translations import TRANSLATIONS

logger = logging.getLogger(__name__)

DEFAULT_STEP_BUDGET = 200000


class MatchBudgetExceeded(Exception):
    """Raised internally when the anchor scan runs out of steps."""


class AnchorScanner:
    """Finds body spans between consecutive anchors of a document."""

    def __init__(self, anchors: List[str], document: str, step_budget: int = DEFAULT_STEP_BUDGET):
        self.anchors = anchors
        self.document = document
        self.step_budget = step_budget
        self.steps = 0  # document characters examined by anchor searches
        self._tail_start = len(document) - len(anchors[-1])

    def scan(self) -> Optional[List[Tuple[int, int]]]:
        """
        Match the whole document in one forward pass.

        Each inner anchor is placed at its first occurrence after the previous
        one. An earlier placement never leaves less room for the anchors that
        follow, so if the first occurrence fails every later one fails too.

        Returns:
            One (start, end) span per body, or None if the document does not fit

        Raises:
            MatchBudgetExceeded: If the searches examine more than step_budget
                characters
        """
        head = self.anchors[0]
        doc = self.document

        if not doc.startswith(head):
            return None

        if len(self.anchors) == 1:
            return [] if doc == head else None

        if self._tail_start < len(head) or not doc.endswith(self.anchors[-1]):
            return None

        spans = []
        body_start = len(head)
        for anchor in self.anchors[1:-1]:
            found = doc.find(anchor, body_start, self._tail_start)
            if found == -1:
                self._charge(self._tail_start - body_start)
                return None
            self._charge(found + len(anchor) - body_start)
            spans.append((body_start, found))
            body_start = found + len(anchor)

        spans.append((body_start, self._tail_start))
        return spans

    def _charge(self, scanned: int):
        self.steps += max(scanned, 1)
        if self.steps > self.step_budget:
            raise MatchBudgetExceeded(f"anchor scan exceeded {self.step_budget} steps")


def reconcile(anchors: List[str], document: str, step_budget: int = DEFAULT_STEP_BUDGET) -> Reconciliation:
    """
    Recover each region's edited body from a student document.

    Args:
        anchors: Anchors produced by split_anchors
        document: Marker-free text submitted by the student
        step_budget: Maximum scanner steps before failing closed

    Returns:
        Reconciliation with one body and span per region, or ok=False with a
        reason when text outside the regions was altered
    """
    scanner = AnchorScanner(anchors, document, step_budget)
    try:
        spans = scanner.scan()
    except MatchBudgetExceeded as e:
        logger.warning("Reconciliation failed closed: %s", e)
        return Reconciliation(
            ok=False,
            reason=TRANSLATIONS["en"]["reconcile_budget"],
            error="reconcile_budget"
        )

    if spans is None:
        logger.debug("Document does not fit %d anchors (%d steps)", len(anchors), scanner.steps)
        return Reconciliation(
            ok=False,
            reason=TRANSLATIONS["en"]["reconcile_outside_edit"],
            error="reconcile_outside_edit"
        )

    bodies = [document[start:end] for start, end in spans]
    return Reconciliation(ok=True, bodies=bodies, spans=spans)


def reconstruct_source(skeleton: str, bodies: List[str], regions: Optional[List[Region]] = None) -> str:
    """
    Splice recovered bodies back into the skeleton's regions.

    Marker lines are kept. If the number of bodies differs from the number of
    regions the skeleton is returned unchanged.
    """
    if regions is None:
        regions = extract_regions(skeleton)

    if len(regions) != len(bodies):
        logger.error("Cannot reconstruct: %d bodies for %d regions", len(bodies), len(regions))
        return skeleton

    source = skeleton
    # Last to first so earlier offsets stay valid
    for region, body in reversed(list(zip(regions, bodies))):
        if region.collapsed and body:
            body = "\n" + body
        source = source[:region.inner_start] + body + source[region.inner_end:]
    return source


def _line_of(document: str, index: int) -> int:
    return document.count("\n", 0, index) + 1


def _preview(body: str, limit: int) -> str:
    for line in body.splitlines():
        if line.strip():
            return line.strip()[:limit]
    return ""


def locate_editable_ranges(
    skeleton: str,
    document: str,
    preview_chars: int = 80,
    step_budget: int = DEFAULT_STEP_BUDGET
) -> Optional[List[EditableRange]]:
    """
    Map each region onto the student's current visible document.

    Args:
        skeleton: Authored source containing marker lines
        document: Student's current marker-free text
        preview_chars: Maximum length of each preview
        step_budget: Maximum scanner steps before giving up

    Returns:
        One EditableRange per region, or None if the blocks cannot be located
    """
    regions = extract_regions(skeleton)
    result = reconcile(split_anchors(skeleton, regions), document, step_budget)
    if not result.ok:
        return None

    ranges = []
    for region, (start, end), body in zip(regions, result.spans, result.bodies):
        ranges.append(EditableRange(
            name=region.name,
            start=start,
            end=end,
            line_start=_line_of(document, start),
            line_end=_line_of(document, max(start, end - 1)),
            preview=_preview(body, preview_chars)
        ))
    return ranges
