# Vault - Merge Engine
#
# Two-way, last-writer-wins reconciliation of vault snapshots at whole-box
# granularity. Tombstones (ids of removed boxes) are unioned and always win:
# a tombstoned id never survives a merge, whichever side still carries it.
#
# Ordering:
#   deleted  - local order, then remote-only ids in remote order
#   contents - local order (a newer remote copy takes the local slot),
#              then remote-only boxes in remote order
#
# Merging more than two copies must be done pairwise with every tombstone
# carried forward; the result is not associative otherwise.

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .box import Box


@dataclass
class MergeResult:
    """Outcome of merging a remote snapshot into a local one."""
    contents: List[Box]
    deleted: List[str]
    name: str
    replaced: List[str] = field(default_factory=list)  # local copies superseded by newer remote ones
    added: List[str] = field(default_factory=list)     # boxes only the remote side had
    dropped: List[str] = field(default_factory=list)   # local boxes removed by a tombstone

    @property
    def changed(self) -> bool:
        return bool(self.replaced or self.added or self.dropped)


def union_tombstones(local: Iterable[str], remote: Iterable[str]) -> List[str]:
    """Ordered set union of two tombstone lists."""
    merged = list(dict.fromkeys(local))
    seen = set(merged)
    for box_id in remote:
        if box_id not in seen:
            seen.add(box_id)
            merged.append(box_id)
    return merged


def merge_vaults(local, remote) -> MergeResult:
    """
    Reconcile two vault snapshots.

    Both arguments expose ``contents`` (boxes), ``deleted`` (ids), ``name``
    and ``updated_at``. Neither is modified; boxes taken from the remote
    side are copied.

    Rules, per box id:
    - on both sides: the copy with the greater updatedAt wins, ties keep local
    - local only: kept unless tombstoned
    - remote only: inserted unless tombstoned
    """
    deleted = union_tombstones(local.deleted, remote.deleted)
    tombstones = set(deleted)

    remaining: Dict[str, Box] = {}
    for box in remote.contents:
        remaining.setdefault(box.id, box)

    result = MergeResult(contents=[], deleted=deleted, name=local.name)
    seen = set()

    for box in local.contents:
        if box.id in seen:
            continue
        seen.add(box.id)

        remote_box = remaining.pop(box.id, None)
        if box.id in tombstones:
            result.dropped.append(box.id)
            continue

        if remote_box is not None and remote_box.updated_at > box.updated_at:
            result.contents.append(remote_box.copy())
            result.replaced.append(box.id)
        else:
            result.contents.append(box)

    for box_id, remote_box in remaining.items():
        if box_id in tombstones:
            continue
        result.contents.append(remote_box.copy())
        result.added.append(box_id)

    if local.updated_at < remote.updated_at:
        result.name = remote.name

    return result
