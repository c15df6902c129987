# chartier/services/identity.py
"""
Character identity resolution.

A path-level character reference comes in one of three shapes:

* a durable id (UUID) -> direct lookup;
* a raw catalog external id ``{source}-{mediaType}-{mediaId}-{characterId}``;
* a search token ``ext-{source}-{mediaType}-{externalId}`` for characters
  that are not persisted yet.

``parse_reference`` turns the string into ``DurableRef`` or ``ExternalRef``
once; the resolver only ever sees those two. External references that carry
source/media type/media id can be re-fetched from the catalog and persisted
on first use. Creation is "insert, and on a uniqueness conflict look the row
up", so concurrent first references converge on one row.
"""
from __future__ import annotations

import logging
import random
import re
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.constants import MEDIA_TYPES, SOURCES
from chartier.db_models import Character
from chartier.errors import InvalidInput, NotFound, UpstreamUnavailable
from chartier.integrations.base import CatalogCharacter
from chartier.integrations.registry import CatalogRegistry
from chartier.models_auth import utcnow

logger = logging.getLogger(__name__)

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
EXTERNAL_ID_RE = re.compile(
    r"^(?P<source>%s)-(?P<media_type>%s)-(?P<media_id>\d+)-(?P<character_id>\d+)$"
    % ("|".join(SOURCES), "|".join(MEDIA_TYPES))
)
EXT_TOKEN_PREFIX = "ext-"


@dataclass(frozen=True)
class DurableRef:
    id: uuid.UUID


@dataclass(frozen=True)
class ExternalRef:
    external_id: str
    source: Optional[str] = None
    media_type: Optional[str] = None
    media_id: Optional[str] = None
    character_id: Optional[str] = None

    @property
    def refetchable(self) -> bool:
        return bool(self.source and self.media_type and self.media_id)


CharacterRef = Union[DurableRef, ExternalRef]


def parse_external_id(external_id: str) -> ExternalRef:
    m = EXTERNAL_ID_RE.match(external_id)
    if not m:
        return ExternalRef(external_id=external_id)
    return ExternalRef(external_id=external_id, **m.groupdict())


def ext_token(source: str, media_type: str, external_id: str) -> str:
    return f"{EXT_TOKEN_PREFIX}{source}-{media_type}-{external_id}"


def parse_reference(raw: str) -> CharacterRef:
    value = (raw or "").strip()
    if not value:
        raise NotFound("Character not found")

    if UUID_RE.match(value):
        return DurableRef(uuid.UUID(value))

    if value.startswith(EXT_TOKEN_PREFIX):
        parts = value.split("-")
        if len(parts) < 4 or not all(parts[1:4]):
            raise NotFound("Character not found")
        source, media_type = parts[1], parts[2]
        external_id = "-".join(parts[3:])
        ref = parse_external_id(external_id)
        if ref.source is None:
            # opaque key: usable for lookup only
            return ExternalRef(external_id=external_id, source=source, media_type=media_type)
        if (ref.source, ref.media_type) != (source, media_type):
            raise NotFound("Character not found")
        return ref

    return parse_external_id(value)


async def find_character(db: AsyncSession, ref: CharacterRef) -> Optional[Character]:
    if isinstance(ref, DurableRef):
        return await db.get(Character, ref.id)
    q = select(Character).where(Character.external_id == ref.external_id)
    if ref.source:
        q = q.where(Character.source == ref.source)
    return (await db.execute(q.limit(1))).scalars().first()


async def lookup_character(db: AsyncSession, reference: str) -> Optional[Character]:
    """Lookup without creating; malformed references simply don't resolve."""
    try:
        ref = parse_reference(reference)
    except NotFound:
        return None
    return await find_character(db, ref)


async def insert_character(
    db: AsyncSession,
    data: CatalogCharacter,
    *,
    trending_score: Optional[float] = None,
) -> Character:
    now = utcnow()
    row = Character(
        external_id=data.external_id,
        source=data.source,
        name=data.name,
        image=data.image,
        description=data.description,
        media_title=data.media_title,
        media_type=data.media_type,
        media_id=data.media_id,
        release_year=data.release_year,
        media_poster=data.media_poster,
        portrayer_name=data.portrayer_name,
        trending_score=random.uniform(0, 100) if trending_score is None else trending_score,
        last_activity_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    try:
        await db.commit()
    except IntegrityError:
        # someone else persisted the same (external_id, source) first
        await db.rollback()
        existing = await find_character(db, ExternalRef(data.external_id, source=data.source))
        if existing is None:
            raise
        return existing
    await db.refresh(row)
    logger.info("Created character %s (%s) from %s", row.id, row.external_id, row.source)
    return row


async def resolve_character(
    db: AsyncSession,
    reference: Union[str, CharacterRef],
    catalogs: CatalogRegistry,
    *,
    create: bool = True,
) -> Character:
    """Map any reference form to a durable Character, creating it if needed."""
    ref = parse_reference(reference) if isinstance(reference, str) else reference

    character = await find_character(db, ref)
    if character is not None:
        return character

    if isinstance(ref, DurableRef) or not create or not ref.refetchable:
        raise NotFound("Character not found")

    try:
        data = await catalogs.adapter(ref.source).get_character(
            ref.media_type, ref.media_id, ref.external_id
        )
    except (UpstreamUnavailable, InvalidInput) as e:
        logger.warning("Could not fetch %s from %s: %s", ref.external_id, ref.source, e)
        raise NotFound("Character not found") from e

    if data is None:
        raise NotFound("Character not found")
    return await insert_character(db, data)
