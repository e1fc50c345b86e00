"""
Drawing surfaces for the spectrum visualizer.
"""

import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from rich.style import Style
from rich.text import Text

RGB = Tuple[int, int, int]


def parse_hex_color(value: str) -> Tuple[RGB, float]:
    """
    Parse '#rgb', '#rrggbb' or '#rrggbbaa'.

    Returns:
        ((r, g, b), alpha) with alpha in 0..1

    Raises:
        ValueError: If the string is not a hex colour
    """
    digits = value.strip().lstrip('#')
    if len(digits) == 3:
        digits = ''.join(c * 2 for c in digits)
    if len(digits) not in (6, 8):
        raise ValueError(f"Not a hex colour: {value!r}")

    r, g, b = (int(digits[i:i + 2], 16) for i in (0, 2, 4))
    alpha = int(digits[6:8], 16) / 255 if len(digits) == 8 else 1.0
    return (r, g, b), alpha


def to_rich_color(value: str) -> str:
    """Normalize a hex colour to the #rrggbb form rich styles accept."""
    (r, g, b), _ = parse_hex_color(value)
    return "#%02x%02x%02x" % (r, g, b)


def blend(color: RGB, background: RGB, alpha: float) -> RGB:
    """Composite `color` over `background` with the given opacity."""
    alpha = max(0.0, min(1.0, alpha))
    return tuple(round(c * alpha + b * (1 - alpha)) for c, b in zip(color, background))


class Canvas(ABC):
    """A rectangular surface that accepts filled rectangles."""

    @property
    @abstractmethod
    def width(self) -> float:
        pass

    @property
    @abstractmethod
    def height(self) -> float:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def fill_rect(self, x: float, y: float, w: float, h: float, color: str, alpha: float = 1.0) -> None:
        pass


class TerminalCanvas(Canvas):
    """
    Character-cell canvas rendered with rich.

    One unit is one cell. Each painted cell shows a full block in the fill
    colour blended over the background; rectangles are rasterized by
    rounding their edges to cell boundaries.
    """

    BLOCK = "█"

    def __init__(self, width: int, height: int, background: str = "#000000"):
        self._width = width
        self._height = height
        self.background, _ = parse_hex_color(background)
        self._lock = threading.Lock()
        self._cells: List[List[Optional[RGB]]] = self._blank()

    def _blank(self) -> List[List[Optional[RGB]]]:
        return [[None] * self._width for _ in range(self._height)]

    @property
    def width(self) -> float:
        return self._width

    @property
    def height(self) -> float:
        return self._height

    def clear(self) -> None:
        with self._lock:
            self._cells = self._blank()

    def fill_rect(self, x: float, y: float, w: float, h: float, color: str, alpha: float = 1.0) -> None:
        rgb, color_alpha = parse_hex_color(color)
        shade = blend(rgb, self.background, alpha * color_alpha)

        x0, x1 = max(0, round(x)), min(self._width, round(x + w))
        y0, y1 = max(0, round(y)), min(self._height, round(y + h))
        # Anything with a visible extent covers at least one cell
        if x1 <= x0 and w > 0 and x0 < self._width:
            x1 = x0 + 1
        if y1 <= y0 and h > 0 and y0 < self._height:
            y1 = y0 + 1

        with self._lock:
            for row in range(y0, y1):
                for col in range(x0, x1):
                    self._cells[row][col] = shade

    def cell(self, col: int, row: int) -> Optional[RGB]:
        return self._cells[row][col]

    def __rich__(self) -> Text:
        text = Text(no_wrap=True, overflow="crop")
        with self._lock:
            rows = [list(r) for r in self._cells]
        for i, row in enumerate(rows):
            for shade in row:
                if shade is None:
                    text.append(" ")
                else:
                    text.append(self.BLOCK, Style(color="#%02x%02x%02x" % shade))
            if i < len(rows) - 1:
                text.append("\n")
        return text
