import json
from typing import Any, Optional
from sqlalchemy.types import TypeDecorator, Text
from cds.core.security import DataEncryption

class EncryptedJSON(TypeDecorator):
    """
    Stores a JSON document (audit details carry patient identifiers) as a
    Fernet token. Decrypted and parsed back on retrieval.
    """
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Optional[str]:
        if value is None:
            return None
        # Datetimes / UUIDs in audit metadata fall back to their string form
        return DataEncryption.encrypt(json.dumps(value, default=str, sort_keys=True))

    def process_result_value(self, value: Optional[str], dialect) -> Any:
        if value is None:
            return None
        return json.loads(DataEncryption.decrypt(value))
