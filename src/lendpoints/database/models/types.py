from typing import Annotated

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import mapped_column

PrimaryKeyAddress = Annotated[
    str,
    mapped_column(String(42), primary_key=True),
]
PrimaryKeyCompositeId = Annotated[
    str,
    mapped_column(primary_key=True),
]
ForeignKeyProtocolId = Annotated[
    str,
    mapped_column(ForeignKey("protocols.id"), index=True),
]
ForeignKeyMarketId = Annotated[
    str,
    mapped_column(ForeignKey("markets.id"), index=True),
]
ForeignKeyAccountId = Annotated[
    str,
    mapped_column(ForeignKey("accounts.id"), index=True),
]
ForeignKeySnapshotId = Annotated[
    str,
    mapped_column(ForeignKey("snapshots.id"), index=True),
]
