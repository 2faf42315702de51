# Streaming data provider
# Reads the platform payloads stored on connected streaming accounts

from typing import Dict
from sqlalchemy.orm import Session

from database.funding_models import StreamingAccount, StreamingPlatform


class StreamingDataProvider:
    """Returns connected accounts keyed by platform. Missing platforms are absent."""

    def __init__(self, db: Session):
        self.db = db

    def accounts_for(self, artist_id: str) -> Dict[StreamingPlatform, StreamingAccount]:
        accounts = self.db.query(StreamingAccount).filter(
            StreamingAccount.user_id == artist_id
        ).all()
        return {account.platform: account for account in accounts}
