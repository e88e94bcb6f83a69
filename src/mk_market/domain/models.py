"""Result of one marketplace action, returned to the (external) web layer."""
from dataclasses import dataclass

from src.mk_common.enums import RecordKind, TrackState


@dataclass
class ActionResult:
    action: str
    kind: RecordKind
    record_id: str
    tx_hash: str
    status: str
    track_state: TrackState | None = None
