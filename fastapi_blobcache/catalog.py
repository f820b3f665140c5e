"""Static table of the blob collections served by the cache."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Collection:
    """A family of blobs sharing one lookup query and one metering policy.

    Args:
        name: First path segment of the resource URL
        lookup_sql: Query returning the large object id as ``oid``, bound with
            ``:identifier`` and ``:filename``
        metered: Whether bytes delivered from this collection are charged to
            the identifier (a picture token)
    """

    name: str
    lookup_sql: str
    metered: bool = False


COLLECTIONS: dict[str, Collection] = {
    "picture": Collection(
        name="picture",
        lookup_sql=(
            "SELECT image AS oid FROM pictures "
            "WHERE token = :identifier AND image_filename = :filename"
        ),
        metered=True,
    ),
    "avatar": Collection(
        name="avatar",
        lookup_sql=(
            "SELECT avatar AS oid FROM users "
            "WHERE username = :identifier AND avatar_filename = :filename"
        ),
    ),
}


def get_collection(name: str) -> Collection | None:
    return COLLECTIONS.get(name)


def is_metered(name: str) -> bool:
    collection = COLLECTIONS.get(name)
    return collection is not None and collection.metered
