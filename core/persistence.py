import uuid
from typing import Any, Callable, Dict, Optional, Tuple, Type

from django.db import IntegrityError, models, transaction
from django.db.models import Q


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


@transaction.atomic
def upsert_by_external_key(
    model: Type[models.Model],
    *,
    key_field: str,
    key_value: Optional[str],
    external_id: Optional[str] = None,
    values: Dict[str, Any],
    create_only: Optional[Dict[str, Any]] = None,
    write_once: Optional[Dict[str, Any]] = None,
    guards: Optional[Dict[str, Callable[[Any, Any], bool]]] = None,
) -> Tuple[models.Model, bool]:
    """
    Insert-or-update a provider-correlated row.

    The row is matched on ``key_field == key_value`` (a unique column) or on
    ``pk == external_id`` when ``external_id`` is a UUID. ``create_only``
    fields are written on insert only; ``write_once`` fields are written on
    insert or while they are still NULL. ``guards`` maps a field to a
    ``(current, new) -> bool`` predicate; an update of that field is skipped
    when it returns False. A concurrent insert of the same key loses on the
    unique index and falls through to the update branch.
    """
    create_only = create_only or {}
    write_once = write_once or {}
    guards = guards or {}

    lookup = Q()
    if key_value:
        lookup |= Q(**{key_field: key_value})
    external_pk = _as_uuid(external_id)
    if external_pk:
        lookup |= Q(pk=external_pk)

    instance = model.objects.select_for_update().filter(lookup).first() if lookup else None
    if instance is None:
        try:
            with transaction.atomic():
                instance = model.objects.create(
                    **{key_field: key_value or None},
                    **create_only,
                    **write_once,
                    **values,
                )
                return instance, True
        except IntegrityError:
            if not key_value:
                raise
            instance = model.objects.select_for_update().get(**{key_field: key_value})

    update_fields = []
    for field, value in values.items():
        guard = guards.get(field)
        if guard is not None and not guard(getattr(instance, field), value):
            continue
        setattr(instance, field, value)
        update_fields.append(field)
    for field, value in write_once.items():
        if value is not None and getattr(instance, field) is None:
            setattr(instance, field, value)
            update_fields.append(field)
    if key_value and getattr(instance, key_field) != key_value:
        setattr(instance, key_field, key_value)
        update_fields.append(key_field)
    instance.save(update_fields=update_fields + ["updated_at"])
    return instance, False
