"""Strike-through detection on page rasters.

Finds horizontal and diagonal strokes, discards those that belong to
printed form structure (table borders, cell corners, row grids, entry
underlines) and reports which OCR text regions each surviving stroke
crosses.
"""

import math

import numpy as np

from page_integrity.extraction.models import BoundingBox
from page_integrity.utils.config import VisualConfig
from page_integrity.utils.logger import get_logger

from .models import DetectedLine, LineOrientation

logger = get_logger(__name__)

# Luminance below which a pixel counts as ink when validating strokes.
_INK_THRESHOLD = 120
# Edge strength accepted along a diagonal ray.
_RAY_EDGE_THRESHOLD = 40
# Consecutive misses tolerated before a ray stops.
_RAY_MAX_GAP = 3
_CONTRAST_MIN = 30
_CONTRAST_ROWS = 3
_THICKNESS_PROBE = 10
_ROW_MARGIN = 5


def _true_runs(row: np.ndarray) -> list[tuple[int, int]]:
    """Return ``(start, end)`` inclusive index pairs of consecutive True values."""
    padded = np.concatenate(([False], row, [False])).astype(np.int8)
    diff = np.diff(padded)
    starts = np.flatnonzero(diff == 1)
    ends = np.flatnonzero(diff == -1) - 1
    return list(zip(starts.tolist(), ends.tolist()))


def _x_overlap(a_left: float, a_right: float, b_left: float, b_right: float) -> float:
    return max(0.0, min(a_right, b_right) - max(a_left, b_left))


def sample_line(gray: np.ndarray, line: DetectedLine) -> np.ndarray:
    """Sample luminance at unit steps along a line.

    Args:
        gray: Grayscale raster.
        line: Line to sample.

    Returns:
        1-D array of luminance values.
    """
    h, w = gray.shape
    if line.y1 == line.y2:
        y = min(max(line.y1, 0), h - 1)
        return gray[y, max(line.left, 0) : min(line.right, w - 1) + 1]
    steps = max(1, int(round(math.hypot(line.x2 - line.x1, line.y2 - line.y1))))
    xs = np.clip(np.rint(np.linspace(line.x1, line.x2, steps + 1)), 0, w - 1)
    ys = np.clip(np.rint(np.linspace(line.y1, line.y2, steps + 1)), 0, h - 1)
    return gray[ys.astype(int), xs.astype(int)]


def march_rays(
    hit: np.ndarray, xs: np.ndarray, ys: np.ndarray, dx: float, dy: float
) -> tuple[np.ndarray, np.ndarray]:
    """Step rays from many seeds across a hit mask in lockstep.

    Each ray advances by ``(dx, dy)`` per step and stops at the raster
    border or after more than three consecutive misses.

    Args:
        hit: Boolean mask of pixels that count as stroke.
        xs: Seed columns.
        ys: Seed rows.
        dx: Column increment per step.
        dy: Row increment per step.

    Returns:
        Per-seed hit counts and the step of the last hit, ``-1`` if none.
    """
    height, width = hit.shape
    hits = np.zeros(len(xs), dtype=np.int64)
    last_hit = np.full(len(xs), -1, dtype=np.int64)
    gap = np.zeros(len(xs), dtype=np.int64)
    active = np.arange(len(xs))
    cx = xs.astype(np.float64)
    cy = ys.astype(np.float64)
    step = 0
    while active.size:
        inside = (cx >= 0) & (cx < width) & (cy >= 0) & (cy < height)
        active, cx, cy = active[inside], cx[inside], cy[inside]
        on_ink = hit[cy.astype(np.intp), cx.astype(np.intp)]
        hits[active[on_ink]] += 1
        last_hit[active[on_ink]] = step
        gap[active] = np.where(on_ink, 0, gap[active] + 1)
        going = gap[active] <= _RAY_MAX_GAP
        active, cx, cy = active[going], cx[going] + dx, cy[going] + dy
        step += 1
    return hits, last_hit


def _ray_pixels(
    x: int, y: int, dx: float, dy: float, steps: int
) -> tuple[np.ndarray, np.ndarray]:
    """Pixel columns and rows visited by the first ``steps`` steps of a ray."""
    px = np.cumsum(np.concatenate(([float(x)], np.full(steps - 1, dx))))
    py = np.cumsum(np.concatenate(([float(y)], np.full(steps - 1, dy))))
    return px.astype(np.intp), py.astype(np.intp)


class StrikethroughDetector:
    """Detects hand-drawn strike-through strokes.

    Args:
        config: Visual detector configuration.
    """

    def __init__(self, config: VisualConfig) -> None:
        self.config = config

    def detect(
        self,
        gray: np.ndarray,
        edges: np.ndarray,
        text_regions: list[BoundingBox],
    ) -> list[DetectedLine]:
        """Find strokes that survive form-structure suppression.

        Args:
            gray: Luminance raster.
            edges: Sobel magnitude raster.
            text_regions: OCR text boxes on the page.

        Returns:
            Candidate strike-through lines.
        """
        horizontal = collapse_adjacent_rows(
            self.find_horizontal_candidates(gray, edges)
        )
        diagonal = self.find_diagonal_candidates(gray, edges)
        grid_lines = find_grid_lines(
            horizontal,
            min_lines=self.config.grid_min_lines,
            tolerance=self.config.grid_spacing_tolerance,
            regular_fraction=self.config.grid_regular_fraction,
        )

        survivors: list[DetectedLine] = []
        rejected: dict[str, int] = {}
        for line in horizontal + diagonal:
            if not self._has_valid_geometry(line):
                rejected["geometry"] = rejected.get("geometry", 0) + 1
                continue
            if id(line) in grid_lines:
                rejected["table_grid"] = rejected.get("table_grid", 0) + 1
                continue
            reason = self.rejection_reason(line, gray, text_regions)
            if reason:
                rejected[reason] = rejected.get(reason, 0) + 1
                continue
            survivors.append(line)

        logger.debug(
            "Strike candidates: %d horizontal, %d diagonal, %d kept, rejected=%s",
            len(horizontal),
            len(diagonal),
            len(survivors),
            rejected,
        )
        return survivors

    def find_horizontal_candidates(
        self, gray: np.ndarray, edges: np.ndarray
    ) -> list[DetectedLine]:
        """Scan rows for long runs of dark or edge pixels.

        Args:
            gray: Luminance raster.
            edges: Sobel magnitude raster.

        Returns:
            Validated horizontal lines, one per qualifying run.
        """
        height, _ = gray.shape
        dark = gray < self.config.dark_threshold
        mask = dark | (edges > self.config.edge_threshold)
        lines: list[DetectedLine] = []

        for y in range(_ROW_MARGIN, height - _ROW_MARGIN):
            for start, end in _true_runs(mask[y]):
                if end - start + 1 < self.config.min_line_length:
                    continue
                continuity = self._horizontal_continuity(gray, start, y, end)
                if continuity is None:
                    continue
                lines.append(
                    DetectedLine(
                        x1=start,
                        y1=y,
                        x2=end,
                        y2=y,
                        angle=0.0,
                        length=float(end - start),
                        thickness=self._estimate_thickness(gray, start, y, end),
                        orientation=LineOrientation.HORIZONTAL,
                        continuity=continuity,
                    )
                )
        return lines

    def _horizontal_continuity(
        self, gray: np.ndarray, x1: int, y: int, x2: int
    ) -> float | None:
        """Return the ink continuity of a run, or ``None`` if it is not a stroke.

        A stroke needs more than ``min_continuity`` ink pixels and must
        stand out by at least 30 levels from the rows above or below.
        """
        height, _ = gray.shape
        segment = gray[y, x1 : x2 + 1].astype(np.float64)
        continuity = float(np.count_nonzero(segment < _INK_THRESHOLD)) / len(segment)
        if continuity <= self.config.min_continuity:
            return None

        xs = np.arange(x1, x2 + 1, 5)
        above = gray[max(0, y - _CONTRAST_ROWS) : y, xs]
        below = gray[y + 1 : min(height, y + 1 + _CONTRAST_ROWS), xs]
        line_avg = segment.mean()
        contrast_above = above.mean() - line_avg if above.size else 0.0
        contrast_below = below.mean() - line_avg if below.size else 0.0
        if contrast_above > _CONTRAST_MIN or contrast_below > _CONTRAST_MIN:
            return continuity
        return None

    def _estimate_thickness(self, gray: np.ndarray, x1: int, y: int, x2: int) -> float:
        height, _ = gray.shape
        total = 0.0
        samples = 0
        for x in range(x1, x2 + 1, 10):
            up = 0
            for dy in range(1, _THICKNESS_PROBE + 1):
                if y - dy >= 0 and gray[y - dy, x] < _INK_THRESHOLD:
                    up += 1
                else:
                    break
            down = 0
            for dy in range(1, _THICKNESS_PROBE + 1):
                if y + dy < height and gray[y + dy, x] < _INK_THRESHOLD:
                    down += 1
                else:
                    break
            total += 1 + up + down
            samples += 1
        return total / samples if samples else 1.0

    def find_diagonal_candidates(
        self, gray: np.ndarray, edges: np.ndarray
    ) -> list[DetectedLine]:
        """Cast rays from edge pixels at the configured angles.

        All rays of one angle are marched together, one step at a time. A
        seed lying on a ray already accepted from an earlier seed is not
        reported again.

        Args:
            gray: Luminance raster.
            edges: Sobel magnitude raster.

        Returns:
            Diagonal lines long and continuous enough to be strokes, in
            seed order.
        """
        stride = self.config.diagonal_stride
        min_length = self.config.min_line_length * self.config.diagonal_length_factor
        hit = (gray < self.config.dark_threshold) | (edges > _RAY_EDGE_THRESHOLD)
        seeds = np.argwhere(edges[::stride, ::stride] >= self.config.edge_threshold)
        if not len(seeds) or not self.config.diagonal_angles:
            return []
        ys, xs = seeds[:, 0] * stride, seeds[:, 1] * stride

        accepted: list[tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]] = []
        for order, angle in enumerate(self.config.diagonal_angles):
            dx, dy = math.cos(math.radians(angle)), math.sin(math.radians(angle))
            hits, last_hit = march_rays(hit, xs, ys, dx, dy)
            length = last_hit + 1
            continuity = np.divide(
                hits, length, out=np.zeros(len(hits)), where=length > 0
            )
            keep = np.flatnonzero(
                (length >= min_length) & (continuity > self.config.min_continuity)
            )
            accepted.append(
                (keep, np.full(len(keep), order), last_hit[keep], continuity[keep])
            )

        seed_index, angle_order, last_hits, continuities = (
            np.concatenate(column) for column in zip(*accepted)
        )
        ranking = np.lexsort((angle_order, seed_index))
        visited = np.zeros(hit.shape, dtype=bool)
        lines: list[DetectedLine] = []
        current, skip = -1, False
        for i in ranking:
            seed = int(seed_index[i])
            x, y = int(xs[seed]), int(ys[seed])
            if seed != current:
                current, skip = seed, bool(visited[y, x])
            if skip:
                continue
            angle = float(self.config.diagonal_angles[angle_order[i]])
            dx, dy = math.cos(math.radians(angle)), math.sin(math.radians(angle))
            last_hit = int(last_hits[i])
            px, py = _ray_pixels(x, y, dx, dy, last_hit + 1)
            on_ink = hit[py, px]
            visited[py[on_ink], px[on_ink]] = True
            lines.append(
                DetectedLine(
                    x1=x,
                    y1=y,
                    x2=int(x + last_hit * dx),
                    y2=int(y + last_hit * dy),
                    angle=angle,
                    length=float(last_hit + 1),
                    thickness=2.0,
                    orientation=LineOrientation.DIAGONAL,
                    continuity=float(continuities[i]),
                )
            )
        return lines

    def _has_valid_geometry(self, line: DetectedLine) -> bool:
        tolerance = self.config.line_angle_tolerance
        angle = line.angle % 180
        nearly_horizontal = angle <= tolerance or abs(angle - 180) <= tolerance
        nearly_diagonal = any(
            abs(angle - a) <= tolerance for a in self.config.diagonal_angles
        )
        return (
            (nearly_horizontal or nearly_diagonal)
            and line.length >= self.config.min_line_length
            and 1 <= line.thickness <= 15
        )

    def rejection_reason(
        self,
        line: DetectedLine,
        gray: np.ndarray,
        text_regions: list[BoundingBox],
    ) -> str | None:
        """Explain why a line is form structure rather than a mark.

        Args:
            line: Candidate line.
            gray: Luminance raster.
            text_regions: OCR text boxes on the page.

        Returns:
            A short reason code, or ``None`` if the line looks hand-drawn.
        """
        if self._on_text_box_edge(line, text_regions):
            return "text_box_border"
        samples = sample_line(gray, line)
        if samples.size == 0 or float(np.std(samples)) < self.config.min_stroke_stddev:
            return "uniform_stroke"
        if line.orientation is LineOrientation.HORIZONTAL:
            if self._touches_cell_corner(gray, line):
                return "cell_corner"
            underline = self._underline_or_border(line, text_regions)
            if underline:
                return underline
        return None

    def _on_text_box_edge(
        self, line: DetectedLine, text_regions: list[BoundingBox]
    ) -> bool:
        band = self.config.border_band_px
        for region in text_regions:
            if _x_overlap(line.left, line.right, region.x, region.right) <= 0:
                continue
            for edge_y in (region.y, region.bottom):
                if abs(line.top - edge_y) <= band and abs(line.bottom - edge_y) <= band:
                    return True
        return False

    def _touches_cell_corner(self, gray: np.ndarray, line: DetectedLine) -> bool:
        height, width = gray.shape
        reach = self.config.corner_search_px
        y = line.y1
        y0 = max(0, y - reach)
        y1 = min(height, y + reach + 1)
        for endpoint in (line.x1, line.x2):
            x0 = max(0, endpoint - reach)
            x1 = min(width, endpoint + reach + 1)
            window = gray[y0:y1, x0:x1] < _INK_THRESHOLD
            if window.size == 0:
                continue
            split = y - y0
            upward = window[: split + 1].mean(axis=0)
            downward = window[split:].mean(axis=0)
            if (upward >= self.config.corner_dark_ratio).any() or (
                downward >= self.config.corner_dark_ratio
            ).any():
                return True
        return False

    def _underline_or_border(
        self, line: DetectedLine, text_regions: list[BoundingBox]
    ) -> str | None:
        y = line.y1
        band = self.config.border_band_px
        for region in text_regions:
            if region.height <= 0 or region.width <= 0:
                continue
            overlap = _x_overlap(line.left, line.right, region.x, region.right)
            if overlap <= 0:
                continue
            relative = (y - region.y) / region.height
            if 1.0 - self.config.underline_band <= relative <= 1.0:
                return "entry_underline"
            spans = overlap > self.config.border_span_ratio * region.width
            near_edge = abs(y - region.y) <= band or abs(y - region.bottom) <= band
            if spans and near_edge:
                return "drawn_border"
        return None

    def affected_regions(
        self, line: DetectedLine, text_regions: list[BoundingBox]
    ) -> list[BoundingBox]:
        """Return the text regions a line strikes through.

        The part of the line inside the region's vertical extent must pass
        through the middle band (25-75% of height), cover at least
        ``min_region_coverage`` of the region width and overhang it by no
        more than ``max_region_overhang`` on either side.

        Args:
            line: Surviving strike-through line.
            text_regions: OCR text boxes on the page.

        Returns:
            Regions crossed by the line, in input order.
        """
        return [r for r in text_regions if self.strikes_region(line, r)]

    def strikes_region(self, line: DetectedLine, region: BoundingBox) -> bool:
        if region.width <= 0 or region.height <= 0:
            return False
        segment = _clip_to_rows(line, region.y, region.bottom)
        if segment is None:
            return False
        (ax, ay), (bx, by) = segment
        left, right = min(ax, bx), max(ax, bx)

        coverage = _x_overlap(left, right, region.x, region.right) / region.width
        if coverage < self.config.min_region_coverage:
            return False
        max_overhang = self.config.max_region_overhang * region.width
        if region.x - left > max_overhang or right - region.right > max_overhang:
            return False

        band_top = region.y + 0.25 * region.height
        band_bottom = region.y + 0.75 * region.height
        inside = _clip_to_columns((ax, ay), (bx, by), region.x, region.right)
        if inside is None:
            return False
        top = min(inside[0][1], inside[1][1])
        bottom = max(inside[0][1], inside[1][1])
        return top <= band_bottom and bottom >= band_top


def _clip_to_rows(
    line: DetectedLine, top: float, bottom: float
) -> tuple[tuple[float, float], tuple[float, float]] | None:
    """Clip a line to the horizontal slab ``top <= y <= bottom``."""
    (x1, y1), (x2, y2) = (line.x1, line.y1), (line.x2, line.y2)
    if y1 == y2:
        if top <= y1 <= bottom:
            return (x1, y1), (x2, y2)
        return None
    if max(y1, y2) < top or min(y1, y2) > bottom:
        return None

    def x_at(y: float) -> float:
        return x1 + (y - y1) * (x2 - x1) / (y2 - y1)

    ya, yb = max(min(y1, y2), top), min(max(y1, y2), bottom)
    return (x_at(ya), ya), (x_at(yb), yb)


def _clip_to_columns(
    a: tuple[float, float], b: tuple[float, float], left: float, right: float
) -> tuple[tuple[float, float], tuple[float, float]] | None:
    """Clip a segment to the vertical slab ``left <= x <= right``."""
    (x1, y1), (x2, y2) = a, b
    if max(x1, x2) < left or min(x1, x2) > right:
        return None
    if x1 == x2:
        return a, b

    def y_at(x: float) -> float:
        return y1 + (x - x1) * (y2 - y1) / (x2 - x1)

    xa, xb = max(min(x1, x2), left), min(max(x1, x2), right)
    return (xa, y_at(xa)), (xb, y_at(xb))


def collapse_adjacent_rows(lines: list[DetectedLine]) -> list[DetectedLine]:
    """Merge horizontal runs on neighbouring rows into single strokes.

    A stroke several pixels thick produces one run per row; grid analysis
    needs one line per stroke.

    Args:
        lines: Horizontal lines, any order.

    Returns:
        One line per stroke, taken from the stroke's middle row and
        widened to the union of its rows.
    """
    groups: list[list[DetectedLine]] = []
    open_groups: list[list[DetectedLine]] = []
    for line in sorted(lines, key=lambda l: (l.y1, l.x1)):
        open_groups = [g for g in open_groups if line.y1 - g[-1].y1 <= 2]
        match = None
        for group in open_groups:
            last = group[-1]
            if last.y1 == line.y1:
                continue
            shorter = min(line.right - line.left, last.right - last.left) or 1
            overlap = _x_overlap(line.left, line.right, last.left, last.right)
            if overlap >= 0.5 * shorter:
                match = group
                break
        if match is None:
            match = []
            groups.append(match)
            open_groups.append(match)
        match.append(line)

    collapsed: list[DetectedLine] = []
    for group in groups:
        middle = group[len(group) // 2]
        left = min(l.left for l in group)
        right = max(l.right for l in group)
        collapsed.append(
            DetectedLine(
                x1=left,
                y1=middle.y1,
                x2=right,
                y2=middle.y1,
                angle=0.0,
                length=float(right - left),
                thickness=max(middle.thickness, float(len(group))),
                orientation=LineOrientation.HORIZONTAL,
                continuity=max(l.continuity for l in group),
            )
        )
    return collapsed


def find_grid_lines(
    lines: list[DetectedLine],
    min_lines: int = 5,
    tolerance: float = 0.15,
    regular_fraction: float = 0.7,
) -> set[int]:
    """Identify horizontal lines that form a regularly spaced table grid.

    Lines are grouped into families by horizontal overlap. A family with
    at least ``min_lines`` distinct rows is regular when more than
    ``regular_fraction`` of its gaps lie within ``tolerance`` of the mean
    gap. Within a regular family, a line is part of the grid when at
    least one of its neighbouring gaps is regular, so a stroke drawn
    between two grid rows is not swept up with them.

    Args:
        lines: Horizontal lines.
        min_lines: Minimum rows for a family to count as a grid.
        tolerance: Allowed relative deviation from the mean gap.
        regular_fraction: Fraction of gaps that must be regular.

    Returns:
        ``id()`` values of the lines that belong to a grid.
    """
    parent = list(range(len(lines)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i, a in enumerate(lines):
        for j in range(i + 1, len(lines)):
            b = lines[j]
            shorter = min(a.right - a.left, b.right - b.left) or 1
            if _x_overlap(a.left, a.right, b.left, b.right) >= 0.5 * shorter:
                parent[find(i)] = find(j)

    families: dict[int, list[DetectedLine]] = {}
    for i, line in enumerate(lines):
        families.setdefault(find(i), []).append(line)

    grid: set[int] = set()
    for family in families.values():
        rows = sorted({l.y1 for l in family})
        if len(rows) < min_lines:
            continue
        gaps = np.diff(np.array(rows, dtype=np.float64))
        mean_gap = float(gaps.mean())
        if mean_gap <= 0:
            continue
        regular = np.abs(gaps - mean_gap) <= tolerance * mean_gap
        if regular.sum() / len(gaps) <= regular_fraction:
            continue

        on_lattice: set[int] = set()
        for idx, row in enumerate(rows):
            before = regular[idx - 1] if idx > 0 else False
            after = regular[idx] if idx < len(gaps) else False
            if before or after:
                on_lattice.add(row)
        grid.update(id(l) for l in family if l.y1 in on_lattice)
        logger.debug(
            "Table grid: %d rows, mean spacing %.1fpx", len(on_lattice), mean_gap
        )
    return grid
