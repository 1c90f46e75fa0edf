import json

import httpx
import pytest

from tribelife.infra.push import ExpoPushClient, is_expo_token


def _client(handler) -> httpx.AsyncClient:
	return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_is_expo_token():
	assert is_expo_token("ExponentPushToken[abc]")
	assert not is_expo_token("fcm:abc")
	assert not is_expo_token(None)


@pytest.mark.asyncio
async def test_push_posts_single_message():
	seen: list = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(json.loads(request.content))
		return httpx.Response(200, json={"data": [{"status": "ok", "id": "ticket-1"}]})

	async with _client(handler) as http:
		await ExpoPushClient(http=http, url="https://push.test/send").push(
			"ExponentPushToken[abc]", "title", "body", {"type": "new_dm", "conversationId": 3}
		)

	assert seen == [
		[
			{
				"to": "ExponentPushToken[abc]",
				"title": "title",
				"body": "body",
				"data": {"type": "new_dm", "conversationId": 3},
				"sound": "default",
				"channelId": "default",
			}
		]
	]


@pytest.mark.asyncio
async def test_push_skips_non_expo_addresses():
	calls: list = []

	def handler(request: httpx.Request) -> httpx.Response:
		calls.append(request)
		return httpx.Response(200, json={"data": []})

	async with _client(handler) as http:
		await ExpoPushClient(http=http, url="https://push.test/send").push("not-a-token", "t", "b", {})

	assert calls == []


@pytest.mark.asyncio
async def test_push_errors_are_swallowed():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(502, text="bad gateway")

	async with _client(handler) as http:
		await ExpoPushClient(http=http, url="https://push.test/send").push("ExponentPushToken[abc]", "t", "b", {})
