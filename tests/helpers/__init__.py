from .fakes import RecordingSleep, ScriptedTransport
from .metric_delta import counter_delta
from .site import FakeJobSite

__all__ = ["FakeJobSite", "RecordingSleep", "ScriptedTransport", "counter_delta"]
