import pytest
from rich.text import Text

from player.canvas import TerminalCanvas, blend, parse_hex_color, to_rich_color


@pytest.mark.parametrize("value,expected", [
    ("#6366f1", ((0x63, 0x66, 0xf1), 1.0)),
    ("#fff", ((255, 255, 255), 1.0)),
    ("000000", ((0, 0, 0), 1.0)),
    ("#ff000080", ((255, 0, 0), 128 / 255)),
])
def test_parse_hex_color(value, expected):
    assert parse_hex_color(value) == expected


@pytest.mark.parametrize("value", ["", "#12", "#12345", "red", "#gggggg"])
def test_parse_hex_color_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_hex_color(value)


def test_to_rich_color_drops_alpha():
    assert to_rich_color("#ABCDEF80") == "#abcdef"


def test_blend():
    assert blend((255, 255, 255), (0, 0, 0), 0.5) == (128, 128, 128)
    assert blend((10, 20, 30), (0, 0, 0), 2.0) == (10, 20, 30)


def test_fill_rect_paints_cells():
    canvas = TerminalCanvas(8, 4)
    canvas.fill_rect(2, 1, 3, 2, "#ff0000")

    assert canvas.cell(2, 1) == (255, 0, 0)
    assert canvas.cell(4, 2) == (255, 0, 0)
    assert canvas.cell(5, 1) is None
    assert canvas.cell(2, 3) is None


def test_thin_rect_covers_one_cell():
    canvas = TerminalCanvas(8, 4)
    canvas.fill_rect(0, 2, 8, 0.2, "#ffffff", 0.2)

    assert canvas.cell(0, 2) == (51, 51, 51)
    assert canvas.cell(7, 2) == (51, 51, 51)
    assert canvas.cell(0, 3) is None


def test_out_of_bounds_is_clipped():
    canvas = TerminalCanvas(4, 4)
    canvas.fill_rect(-2, -2, 100, 100, "#00ff00")
    assert canvas.cell(3, 3) == (0, 255, 0)


def test_clear_and_render():
    canvas = TerminalCanvas(3, 2)
    canvas.fill_rect(0, 0, 1, 1, "#00ff00")
    text = canvas.__rich__()

    assert isinstance(text, Text)
    assert text.plain == "█  \n   "

    canvas.clear()
    assert canvas.__rich__().plain == "   \n   "
