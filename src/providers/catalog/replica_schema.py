"""SQLAlchemy Core tables for the subset of the MusicBrainz schema we read.

Only the columns the replica provider queries are declared.  Tables live in
the ``musicbrainz`` schema, as in a standard MusicBrainz mirror; a SQLite
mirror (which has no schemas) is reached by translating that schema to
``None`` on the engine.
"""

from __future__ import annotations

import sqlalchemy as sa

MUSICBRAINZ_SCHEMA = "musicbrainz"

metadata = sa.MetaData(schema=MUSICBRAINZ_SCHEMA)

artist_type = sa.Table(
    "artist_type",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(255), nullable=False),
)

area = sa.Table(
    "area",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("gid", sa.Uuid(as_uuid=False)),
    sa.Column("name", sa.String),
)

iso_3166_1 = sa.Table(
    "iso_3166_1",
    metadata,
    sa.Column("area", sa.Integer),
    sa.Column("code", sa.String(2), primary_key=True),
)

artist = sa.Table(
    "artist",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("gid", sa.Uuid(as_uuid=False), nullable=False, unique=True),
    sa.Column("name", sa.String, nullable=False),
    sa.Column("sort_name", sa.String, nullable=False),
    sa.Column("begin_date_year", sa.SmallInteger),
    sa.Column("begin_date_month", sa.SmallInteger),
    sa.Column("begin_date_day", sa.SmallInteger),
    sa.Column("end_date_year", sa.SmallInteger),
    sa.Column("end_date_month", sa.SmallInteger),
    sa.Column("end_date_day", sa.SmallInteger),
    sa.Column("type", sa.Integer),
    sa.Column("area", sa.Integer),
    sa.Column("comment", sa.String(255), nullable=False, default=""),
    sa.Column("ended", sa.Boolean, nullable=False, default=False),
)

link_type = sa.Table(
    "link_type",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(255), nullable=False),
    sa.Column("entity_type0", sa.String(50)),
    sa.Column("entity_type1", sa.String(50)),
)

link = sa.Table(
    "link",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("link_type", sa.Integer, nullable=False),
    sa.Column("begin_date_year", sa.SmallInteger),
    sa.Column("begin_date_month", sa.SmallInteger),
    sa.Column("begin_date_day", sa.SmallInteger),
    sa.Column("end_date_year", sa.SmallInteger),
    sa.Column("end_date_month", sa.SmallInteger),
    sa.Column("end_date_day", sa.SmallInteger),
    sa.Column("ended", sa.Boolean, nullable=False, default=False),
)

link_attribute_type = sa.Table(
    "link_attribute_type",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(255), nullable=False),
)

link_attribute = sa.Table(
    "link_attribute",
    metadata,
    sa.Column("link", sa.Integer, primary_key=True),
    sa.Column("attribute_type", sa.Integer, primary_key=True),
)

l_artist_artist = sa.Table(
    "l_artist_artist",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("link", sa.Integer, nullable=False),
    sa.Column("entity0", sa.Integer, nullable=False),
    sa.Column("entity1", sa.Integer, nullable=False),
)

tag = sa.Table(
    "tag",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String, nullable=False),
)

artist_tag = sa.Table(
    "artist_tag",
    metadata,
    sa.Column("artist", sa.Integer, primary_key=True),
    sa.Column("tag", sa.Integer, primary_key=True),
    sa.Column("count", sa.Integer, nullable=False, default=0),
)


def schema_translate_map(url: str, schema: str | None = MUSICBRAINZ_SCHEMA) -> dict[str, str | None]:
    """Map the declared schema onto the one actually present at *url*.

    SQLite has no schemas, so the tables are addressed unqualified there.
    """
    if url.startswith("sqlite"):
        return {MUSICBRAINZ_SCHEMA: None}
    return {MUSICBRAINZ_SCHEMA: schema}
