"""Merge-on-fetch policy for orders.

Remote shape wins, images are patched: for every order in the remote result,
an image field that is absent remotely inherits the value held by the locally
cached order with the same ``id``. Every other field comes from the remote
copy. Orders that exist only locally are not brought back; the merge ranges
over the remote result set only.

Images can be missing remotely for a legitimate reason: the sheet column only
carries a presence flag (or a size-bounded payload), see
:class:`~order_ledger.codec.ImageColumnPolicy`.
"""

from __future__ import annotations

from collections.abc import Iterable

from .images import is_present
from .models import Order

IMAGE_FIELDS: tuple[str, ...] = ("cake_image", "delivered_image")


def reconcile(remote_orders: Iterable[Order], local_orders: Iterable[Order]) -> tuple[Order, ...]:
    local_by_id = {o.id: o for o in local_orders}
    merged: list[Order] = []
    for remote in remote_orders:
        local = local_by_id.get(remote.id)
        if local is None:
            merged.append(remote)
            continue
        patch = {
            field: getattr(local, field)
            for field in IMAGE_FIELDS
            if not is_present(getattr(remote, field)) and is_present(getattr(local, field))
        }
        merged.append(remote.model_copy(update=patch) if patch else remote)
    return tuple(merged)


__all__ = ["IMAGE_FIELDS", "reconcile"]
