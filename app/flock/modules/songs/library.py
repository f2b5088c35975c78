"""
Default song library seeded into every new tenant.

All entries are public-domain hymns so they can be printed without a CCLI
license; hymn numbers follow the 1991 Baptist Hymnal (`BH91`).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


DEFAULT_HYMNS: list[dict] = [
    {
        "title": "Amazing Grace",
        "alternate_title": "Amazing Grace! How Sweet the Sound",
        "first_line": "Amazing grace! how sweet the sound",
        "tune_name": "NEW BRITAIN",
        "hymn_number": "330",
        "author": "John Newton",
        "default_key": "G",
    },
    {
        "title": "Holy, Holy, Holy",
        "alternate_title": "Holy, Holy, Holy! Lord God Almighty",
        "first_line": "Holy, holy, holy! Lord God Almighty!",
        "tune_name": "NICAEA",
        "hymn_number": "2",
        "author": "Reginald Heber",
        "composer": "John B. Dykes",
        "default_key": "D",
    },
    {
        "title": "A Mighty Fortress Is Our God",
        "first_line": "A mighty fortress is our God",
        "tune_name": "EIN FESTE BURG",
        "hymn_number": "8",
        "author": "Martin Luther",
        "composer": "Martin Luther",
        "default_key": "C",
    },
    {
        "title": "Come, Thou Fount of Every Blessing",
        "first_line": "Come, thou Fount of every blessing",
        "tune_name": "NETTLETON",
        "hymn_number": "15",
        "author": "Robert Robinson",
        "default_key": "D",
    },
    {
        "title": "Be Thou My Vision",
        "first_line": "Be thou my vision, O Lord of my heart",
        "tune_name": "SLANE",
        "hymn_number": "60",
        "author": "Irish hymn, tr. Mary E. Byrne",
        "default_key": "E♭",
    },
    {
        "title": "Crown Him with Many Crowns",
        "first_line": "Crown him with many crowns",
        "tune_name": "DIADEMATA",
        "hymn_number": "161",
        "author": "Matthew Bridges",
        "composer": "George J. Elvey",
        "default_key": "D",
    },
    {
        "title": "All Hail the Power of Jesus' Name",
        "first_line": "All hail the power of Jesus' name!",
        "tune_name": "CORONATION",
        "hymn_number": "202",
        "author": "Edward Perronet",
        "composer": "Oliver Holden",
        "default_key": "A♭",
    },
    {
        "title": "When I Survey the Wondrous Cross",
        "first_line": "When I survey the wondrous cross",
        "tune_name": "HAMBURG",
        "hymn_number": "144",
        "author": "Isaac Watts",
        "composer": "Lowell Mason",
        "default_key": "F",
    },
    {
        "title": "It Is Well with My Soul",
        "first_line": "When peace, like a river, attendeth my way",
        "tune_name": "VILLE DU HAVRE",
        "hymn_number": "410",
        "author": "Horatio G. Spafford",
        "composer": "Philip P. Bliss",
        "default_key": "C",
    },
    {
        "title": "Doxology",
        "alternate_title": "Praise God, from Whom All Blessings Flow",
        "first_line": "Praise God, from whom all blessings flow",
        "tune_name": "OLD 100TH",
        "hymn_number": "253",
        "author": "Thomas Ken",
        "composer": "Louis Bourgeois",
        "default_key": "G",
    },
    {
        "title": "Blessed Assurance",
        "first_line": "Blessed assurance, Jesus is mine!",
        "tune_name": "ASSURANCE",
        "hymn_number": "334",
        "author": "Fanny J. Crosby",
        "composer": "Phoebe P. Knapp",
        "default_key": "D",
    },
    {
        "title": "Joyful, Joyful, We Adore Thee",
        "first_line": "Joyful, joyful, we adore thee",
        "tune_name": "HYMN TO JOY",
        "hymn_number": "7",
        "author": "Henry van Dyke",
        "composer": "Ludwig van Beethoven",
        "default_key": "G",
    },
    {
        "title": "Rock of Ages",
        "alternate_title": "Rock of Ages, Cleft for Me",
        "first_line": "Rock of Ages, cleft for me",
        "tune_name": "TOPLADY",
        "hymn_number": "342",
        "author": "Augustus M. Toplady",
        "composer": "Thomas Hastings",
        "default_key": "B♭",
    },
]


def default_songs() -> list[dict]:
    """Library entries with the defaults every seeded song carries."""
    out = []
    for entry in DEFAULT_HYMNS:
        song = {"hymnal_code": "BH91", "is_public_domain": True}
        song.update(entry)
        out.append(song)
    return out


def seed_songs_for_tenant(s: "Session", tenant_id: str) -> dict:
    """
    Create or refresh the default library for a tenant.

    Idempotent: an existing song with the same title and hymnal code is
    updated in place. Returns `{created, updated, errors, total}`.
    """
    from app.flock.errors import BadRequest
    from app.flock.modules.songs.service import upsert_song

    created = updated = errors = 0
    songs = default_songs()
    for data in songs:
        try:
            _, was_created = upsert_song(s, tenant_id, data, match="title")
        except BadRequest as e:
            errors += 1
            logger.warning("Skipping seed song %r for tenant %s: %s", data.get("title"), tenant_id, e.message)
            continue
        if was_created:
            created += 1
        else:
            updated += 1
    return {"created": created, "updated": updated, "errors": errors, "total": len(songs)}
