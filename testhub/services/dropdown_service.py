"""
Dropdown Service — project-configurable enumerations.

Priority, status, severity and environment are not closed enums: admins
edit the accepted values per project. Importers load each (entity, field)
set once per batch via ``load_enumeration`` and pass the resulting
``EnumerationSet`` into every row; nothing here is cached globally.

Resolution order for a project:
    1. active options owned by the project
    2. active global options (project_id IS NULL)
    3. the built-in DEFAULT_OPTIONS
"""

import logging
from dataclasses import dataclass

from testhub.core.exceptions import ValidationError
from testhub.models import db
from testhub.models.dropdown import DEFAULT_OPTIONS, DropdownOption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnumOption:
    value: str
    label: str


@dataclass(frozen=True)
class EnumerationSet:
    """Validated option set for one (entity, field) pair."""

    entity: str
    field: str
    options: tuple[EnumOption, ...]

    @property
    def values(self) -> list[str]:
        return [o.value for o in self.options]

    def __bool__(self) -> bool:
        return bool(self.options)

    def __contains__(self, raw) -> bool:
        return self.match(raw) is not None

    def match(self, raw) -> str | None:
        """Return the canonical value for ``raw`` (value or label, case-insensitive)."""
        if raw is None:
            return None
        wanted = str(raw).strip().casefold()
        if not wanted:
            return None
        for option in self.options:
            if option.value.casefold() == wanted:
                return option.value
        for option in self.options:
            if option.label.casefold() == wanted:
                return option.value
        return None

    def resolve(self, raw, default: str | None = None, name: str | None = None) -> str | None:
        """Map a cell to a canonical value; blank cells take ``default``.

        Raises:
            ValidationError: the value (or the default) is not an accepted option.
        """
        text = "" if raw is None else str(raw).strip()
        if not text:
            if default is None:
                return None
            text = default
        value = self.match(text)
        if value is None:
            label = name or self.field
            raise ValidationError(
                f"Invalid {label}: {text}. Valid values are: {', '.join(self.values)}",
                details={label: text},
            )
        return value


def _query_options(entity: str, field: str, project_id: int | None) -> list[DropdownOption]:
    query = DropdownOption.query.filter_by(entity=entity, field=field, is_active=True)
    if project_id is None:
        query = query.filter(DropdownOption.project_id.is_(None))
    else:
        query = query.filter(DropdownOption.project_id == project_id)
    return query.order_by(DropdownOption.order, DropdownOption.id).all()


def load_enumeration(entity: str, field: str, project_id: int | None = None) -> EnumerationSet:
    """Load the accepted options for ``entity.field`` as seen by ``project_id``."""
    rows = _query_options(entity, field, project_id) if project_id is not None else []
    if not rows:
        rows = _query_options(entity, field, None)
    if rows:
        options = tuple(EnumOption(value=r.value, label=r.label) for r in rows)
    else:
        defaults = DEFAULT_OPTIONS.get((entity, field), [])
        if defaults:
            logger.debug("No configured options for %s.%s, using built-in defaults", entity, field)
        options = tuple(EnumOption(value=v, label=lbl) for v, lbl in defaults)
    return EnumerationSet(entity=entity, field=field, options=options)


def seed_default_options(project_id: int | None = None) -> int:
    """
    Insert the built-in option sets.
    Safe to run multiple times; skips existing (entity, field, value) combos.

    Call this from a Flask CLI command or a test fixture.
    """
    created = 0
    for (entity, field), options in DEFAULT_OPTIONS.items():
        for order, (value, label) in enumerate(options, start=1):
            query = DropdownOption.query.filter_by(entity=entity, field=field, value=value)
            if project_id is None:
                query = query.filter(DropdownOption.project_id.is_(None))
            else:
                query = query.filter(DropdownOption.project_id == project_id)
            if query.first() is None:
                db.session.add(DropdownOption(
                    project_id=project_id, entity=entity, field=field,
                    value=value, label=label, order=order,
                ))
                created += 1

    if created > 0:
        db.session.flush()
        logger.info("Seeded %d dropdown options", created)

    return created
