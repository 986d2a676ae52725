from dataclasses import dataclass
from enum import Enum

ALIASES = {
    "?": "help",
    "q": "quit",
    "ls": "tree",
    "s": "select",
    "t": "toggle",
    "h": "history",
}


class RouteKind(str, Enum):
    REQUEST = "request"
    BUILTIN = "builtin"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RouteResult:
    kind: RouteKind
    name: str | None
    args: str


class InputRouter:
    """Splits console input into testing requests and slash commands.

    Anything not starting with `/` is a request for the engine; a leading
    `//` escapes a request that itself begins with a slash.
    """

    def __init__(self, builtins, aliases: dict[str, str] | None = None):
        self.builtins = builtins
        self.aliases = ALIASES if aliases is None else aliases

    def route(self, user_input: str) -> RouteResult:
        if user_input.startswith("//"):
            return RouteResult(kind=RouteKind.REQUEST, name=None, args=user_input[1:])
        if not user_input.startswith("/"):
            return RouteResult(kind=RouteKind.REQUEST, name=None, args=user_input)

        head, _, rest = user_input[1:].partition(" ")
        cmd = self.aliases.get(head.lower(), head.lower())
        if self.builtins.has_command(cmd):
            return RouteResult(kind=RouteKind.BUILTIN, name=cmd, args=rest.strip())
        return RouteResult(kind=RouteKind.UNKNOWN, name=head, args=rest.strip())
