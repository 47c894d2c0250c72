"""DynamoDB-backed durable slot."""
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from store.exceptions import PersistenceReadError, PersistenceWriteError
from storage.slots import DEFAULT_KEY, DurableSlot

logger = logging.getLogger(__name__)


class DynamoDBSlot(DurableSlot):
    """
    Slot stored as a single DynamoDB item.

    The table is keyed on a string ``slot_key`` attribute; the serialized
    collection lives in the ``payload`` attribute of one item.
    """

    KEY_ATTRIBUTE = 'slot_key'
    VALUE_ATTRIBUTE = 'payload'

    def __init__(self, table_name: str, key: str = DEFAULT_KEY):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            key: Item key holding the slot value
        """
        super().__init__(key)
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBSlot for table: {table_name}")

    def read(self) -> Optional[str]:
        """
        Fetch the slot item.

        Returns:
            Stored payload, or None if the item does not exist

        Raises:
            PersistenceReadError: If the GetItem call fails
        """
        try:
            response = self.table.get_item(
                Key={self.KEY_ATTRIBUTE: self.key},
                ConsistentRead=True
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error reading slot '{self.key}' from DynamoDB: {e}")
            raise PersistenceReadError(
                f"Failed to read slot '{self.key}': {e}", key=self.key
            ) from e

        item = response.get('Item')
        if item is None:
            return None
        value = item.get(self.VALUE_ATTRIBUTE)
        if not isinstance(value, str):
            logger.warning(f"Slot '{self.key}' has no string payload")
            return None
        return value

    def write(self, value: str) -> None:
        """
        Overwrite the slot item.

        Raises:
            PersistenceWriteError: If the PutItem call fails, e.g. when the
                item exceeds the DynamoDB size limit
        """
        try:
            self.table.put_item(
                Item={
                    self.KEY_ATTRIBUTE: self.key,
                    self.VALUE_ATTRIBUTE: value
                }
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error writing slot '{self.key}' to DynamoDB: {e}")
            raise PersistenceWriteError(
                f"Failed to write slot '{self.key}': {e}", key=self.key
            ) from e
