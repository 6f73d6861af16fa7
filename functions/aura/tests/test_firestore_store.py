import unittest
from unittest.mock import MagicMock, patch

from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP as FIRESTORE_SERVER_TIMESTAMP

from aura.errors import NotFoundError
from aura.firestore_store import FirestoreDocumentStore
from aura.store import DESCENDING, SERVER_TIMESTAMP, Query


def _doc(path, data):
    doc = MagicMock()
    doc.exists = data is not None
    doc.to_dict.return_value = data
    doc.reference.path = path
    return doc


class FirestoreDocumentStoreTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.store = FirestoreDocumentStore(client=self.client)

    def test_get_wraps_snapshot(self):
        self.client.document.return_value.get.return_value = _doc("users/a", {"username": "a"})
        snapshot = self.store.get("users/a")
        self.client.document.assert_called_with("users/a")
        self.assertEqual(snapshot.get("username"), "a")

        self.client.document.return_value.get.return_value = _doc("users/b", None)
        self.assertFalse(self.store.get("users/b").exists)

    def test_server_timestamps_are_translated(self):
        self.store.set("posts/p", {"createdAt": SERVER_TIMESTAMP, "tags": [SERVER_TIMESTAMP]})
        written = self.client.document.return_value.set.call_args.args[0]
        self.assertIs(written["createdAt"], FIRESTORE_SERVER_TIMESTAMP)
        self.assertIs(written["tags"][0], FIRESTORE_SERVER_TIMESTAMP)

    def test_update_missing_document(self):
        self.client.document.return_value.update.side_effect = exceptions.NotFound("gone")
        with self.assertRaises(NotFoundError):
            self.store.update("users/a", {"bio": "x"})

    def test_query_is_translated(self):
        native = self.client.collection.return_value
        native.where.return_value = native
        native.order_by.return_value = native
        native.limit.return_value = native
        native.stream.return_value = [_doc("chats/c1", {"members": ["a"]})]

        query = (
            Query("chats")
            .where("members", "array-contains", "a")
            .order_by("updatedAt", DESCENDING)
            .limit(5)
        )
        results = self.store.query(query)

        self.client.collection.assert_called_once_with("chats")
        field_filter = native.where.call_args.kwargs["filter"]
        self.assertEqual(field_filter.op_string, "array_contains")
        self.assertEqual(native.order_by.call_args.args, ("updatedAt",))
        native.limit.assert_called_once_with(5)
        self.assertEqual([s.path for s in results], ["chats/c1"])

    def test_collection_group_queries(self):
        native = self.client.collection_group.return_value
        native.stream.return_value = []
        self.store.query(Query.collection_group("comments"))
        self.client.collection_group.assert_called_once_with("comments")

    @patch("aura.firestore_store.firestore.transactional", side_effect=lambda fn: fn)
    def test_run_transaction_reads_through_transaction(self, _mock_transactional):
        native_txn = self.client.transaction.return_value
        self.client.document.return_value.get.return_value = _doc("counters/c", {"value": 1})

        def _fn(txn):
            value = txn.get("counters/c").get("value")
            txn.update("counters/c", {"value": value + 1})
            return value + 1

        self.assertEqual(self.store.run_transaction(_fn, max_attempts=3), 2)
        self.client.transaction.assert_called_once_with(max_attempts=3)
        self.client.document.return_value.get.assert_called_with(transaction=native_txn)
        native_txn.update.assert_called_once()


if __name__ == "__main__":
    unittest.main()
