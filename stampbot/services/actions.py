"""Outbound actions returned by flow handlers.

Handlers never send directly; they return an ordered list of these and the
dispatcher executes it after the state transition has been committed.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20
MAX_LIST_ROWS = 10


@dataclass(frozen=True)
class Button:
    id: str
    title: str


@dataclass(frozen=True)
class ListRow:
    id: str
    title: str
    description: Optional[str] = None


@dataclass(frozen=True)
class ListSection:
    title: str
    rows: tuple[ListRow, ...]


@dataclass(frozen=True)
class SendText:
    body: str


@dataclass(frozen=True)
class SendImage:
    link: str
    caption: Optional[str] = None


@dataclass(frozen=True)
class SendButtons:
    body: str
    buttons: tuple[Button, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 1 <= len(self.buttons) <= MAX_BUTTONS:
            raise ValueError(f"Interactive buttons must number 1..{MAX_BUTTONS}, got {len(self.buttons)}")
        for button in self.buttons:
            if len(button.title) > MAX_BUTTON_TITLE:
                raise ValueError(f"Button title too long: {button.title!r}")


@dataclass(frozen=True)
class SendList:
    body: str
    sections: tuple[ListSection, ...]
    button: str = "Options"

    def __post_init__(self):
        rows = sum(len(section.rows) for section in self.sections)
        if not 1 <= rows <= MAX_LIST_ROWS:
            raise ValueError(f"List must offer 1..{MAX_LIST_ROWS} rows, got {rows}")


Action = Union[SendText, SendImage, SendButtons, SendList]


def buttons(*pairs: tuple[str, str]) -> tuple[Button, ...]:
    return tuple(Button(id=reply_id, title=title) for reply_id, title in pairs)
