"""
Scripted test doubles for the transport layer and sleeping.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from jobquarry.crawler.transports import TransportError, TransportResponse

Scripted = Union[TransportResponse, TransportError, Tuple[int, str]]


def _materialize(item: Scripted, url: str) -> TransportResponse:
    if isinstance(item, TransportError):
        raise item
    if isinstance(item, tuple):
        status, text = item
        return TransportResponse(status=status, text=text, final_url=url)
    return item


class ScriptedTransport:
    """
    Transport that answers from a per-URL script.

    Each URL maps to a sequence of responses consumed in order; the last one
    repeats. URLs without a script get ``default`` (or a 404).
    """

    def __init__(
        self,
        name: str = "scripted",
        routes: Optional[Dict[str, Sequence[Scripted]]] = None,
        default: Optional[Scripted] = None,
        responder: Optional[Callable[[str], Scripted]] = None,
    ) -> None:
        self.name = name
        self.routes: Dict[str, List[Scripted]] = {url: list(items) for url, items in (routes or {}).items()}
        self.default = default
        self.responder = responder
        self.calls: List[Dict[str, object]] = []
        self.closed = False

    async def get(self, url, *, headers, cookies, proxy, timeout):
        self.calls.append({"url": url, "headers": dict(headers), "cookies": dict(cookies), "proxy": proxy})
        if self.responder is not None:
            return _materialize(self.responder(url), url)
        script = self.routes.get(url)
        if script:
            item = script.pop(0) if len(script) > 1 else script[0]
            return _materialize(item, url)
        if self.default is not None:
            return _materialize(self.default, url)
        return TransportResponse(status=404, text="not found", final_url=url)

    def urls(self) -> List[str]:
        return [str(call["url"]) for call in self.calls]

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Drop-in for asyncio.sleep that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
