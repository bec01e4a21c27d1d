from typing import Awaitable, Callable, Literal

from pydantic import BaseModel


class Notification(BaseModel):
    """Short user-facing message raised by the attempt controller."""
    level: Literal["success", "info", "warning"] = "info"
    key: str
    text: str


Notifier = Callable[[Notification], Awaitable[None]]
