"""Tests for DynamoDBClient."""

import pytest
from botocore.exceptions import ClientError

from infrastructure.clients.aws.dynamodb import DynamoDBClient

pytestmark = pytest.mark.unit


@pytest.fixture
def make_client(make_fake_client, session_provider_for):
    def _factory(**fake_kwargs):
        fake = make_fake_client(**fake_kwargs)
        return DynamoDBClient(session_provider_for(fake)), fake

    return _factory


class TestDynamoDBClient:
    def test_boto3_client_created_once(self, make_fake_client, session_provider_for):
        provider = session_provider_for(make_fake_client())
        client = DynamoDBClient(provider)

        assert client.client is client.client
        provider.get_boto3_client.assert_called_once_with("dynamodb")

    def test_get_item(self, make_client):
        client, fake = make_client(
            api_responses={"get_item": {"Item": {"id": {"S": "n-1"}}}}
        )

        result = client.get_item("notifications", {"id": {"S": "n-1"}}, ConsistentRead=True)

        assert result.data == {"Item": {"id": {"S": "n-1"}}}
        assert fake.calls[0] == {
            "method": "get_item",
            "TableName": "notifications",
            "Key": {"id": {"S": "n-1"}},
            "ConsistentRead": True,
        }

    def test_conditional_put_failure(self, make_client):
        error = ClientError(
            {"Error": {"Code": "ConditionalCheckFailedException", "Message": "no"}},
            "PutItem",
        )
        client, _ = make_client(api_responses={"put_item": error})

        result = client.put_item(
            "notifications",
            {"id": {"S": "n-1"}},
            expected_error_codes=["CONDITION_FAILED"],
            ConditionExpression="attribute_not_exists(id)",
        )

        assert not result.is_success
        assert result.error_code == "CONDITION_FAILED"

    def test_query_follows_pages(self, make_client):
        client, fake = make_client(
            paginated_pages=[
                {"Items": [{"id": {"S": "a"}}]},
                {"Items": [{"id": {"S": "b"}}]},
            ]
        )

        result = client.query(
            "notifications",
            KeyConditionExpression="#s = :s",
            IndexName="status-scheduled_at-index",
        )

        assert [item["id"]["S"] for item in result.data] == ["a", "b"]
        assert fake.paginator.kwargs["IndexName"] == "status-scheduled_at-index"

    def test_scan(self, make_client):
        client, _ = make_client(paginated_pages=[{"Items": []}])
        assert client.scan("notifications").data == []

    def test_healthcheck(self, make_client):
        client, fake = make_client(api_responses={"describe_table": {"Table": {}}})
        assert client.healthcheck("notifications").is_success
        assert fake.calls[0]["TableName"] == "notifications"
