import pytest

from streamq_cli.cli.formatters import format_elapsed


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0, "0:00"),
        (59.9, "0:59"),
        (61, "1:01"),
        (3600, "1:00:00"),
        (3 * 3600 + 5 * 60 + 7, "3:05:07"),
        (-4, "0:00"),
    ],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected
