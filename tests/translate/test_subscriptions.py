"""Tests for subscriptions built from callbacks, and oasgraph/translate/pubsub.py."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from inspect import isawaitable
from typing import Any

from graphql import ExecutionResult, GraphQLSchema, parse, subscribe

from oasgraph.formats.options import Options
from oasgraph.translate.assemble import create_graphql_schema
from oasgraph.translate.pubsub import PubSub
from oasgraph.translate.types import ResolveContext
from tests.conftest import CALLBACK_URL

QUERY = """subscription {
  devicesEventListener(userName: "ada", deviceType: "phone") { name deviceType }
}"""
TOPIC = "/users/ada/devices/phone"


def build(oas: dict[str, Any], **options: Any) -> GraphQLSchema:
    schema, _ = create_graphql_schema(oas, Options(create_subscriptions_from_callbacks=True, **options))
    return schema


async def _start(schema: GraphQLSchema, query: str, context: Any) -> Any:
    result = subscribe(schema, parse(query), context_value=context)
    if isawaitable(result):
        result = await result
    return result


def collect(schema: GraphQLSchema, context: Any, publish: list[tuple[str, Any]], count: int) -> list[Any]:
    """Subscribe, publish *publish* and return the first *count* results."""

    async def main() -> list[Any]:
        stream = await _start(schema, QUERY, context)
        assert not isinstance(stream, ExecutionResult), stream.errors
        for topic, payload in publish:
            context.pubsub.publish(topic, payload)
        try:
            return [await stream.__anext__() for _ in range(count)]
        finally:
            await stream.aclose()

    return asyncio.run(main())


class TestSubscriptionSchema:
    def test_no_subscriptions_by_default(self, callback_oas) -> None:
        schema, report = create_graphql_schema(callback_oas)
        assert schema.subscription_type is None
        assert report.num_subscriptions_created == 0

    def test_subscription_field(self, callback_oas) -> None:
        schema, report = create_graphql_schema(
            callback_oas, Options(create_subscriptions_from_callbacks=True)
        )
        field = schema.subscription_type.fields["devicesEventListener"]
        assert field.type is schema.get_type("Device")
        assert {name: str(arg.type) for name, arg in field.args.items()} == {
            "userName": "String!",
            "deviceType": "String!",
        }
        assert field.subscribe is not None
        assert field.resolve is not None
        assert report.num_ops_subscription == 1
        assert report.num_subscriptions_created == 1
        assert "postUserDevice" in schema.mutation_type.fields

    def test_unknown_custom_subscription_resolver(self, callback_oas) -> None:
        options = Options(
            create_subscriptions_from_callbacks=True,
            custom_subscription_resolvers={"Device API": {"/nope": {"post": {"subscribe": print}}}},
        )
        _, report = create_graphql_schema(callback_oas, options)
        assert len(report.of_type("CUSTOM_RESOLVER_UNKNOWN_PATH_METHOD")) == 1


class TestSubscriptionExecution:
    def test_published_payloads(self, callback_oas) -> None:
        context = ResolveContext(pubsub=PubSub())
        results = collect(
            build(callback_oas),
            context,
            [
                ("/users/bob/devices/phone", {"name": "Other"}),
                (TOPIC, {"name": "Pixel", "device-type": "phone"}),
                (TOPIC, json.dumps({"name": "Fairphone", "device-type": "phone"}).encode()),
            ],
            count=2,
        )
        assert [r.errors for r in results] == [None, None]
        assert [r.data for r in results] == [
            {"devicesEventListener": {"name": "Pixel", "deviceType": "phone"}},
            {"devicesEventListener": {"name": "Fairphone", "deviceType": "phone"}},
        ]

    def test_invalid_json_payload(self, callback_oas) -> None:
        context = ResolveContext(pubsub=PubSub())
        (result,) = collect(build(callback_oas), context, [(TOPIC, "{not json")], count=1)
        assert result.data == {"devicesEventListener": None}
        assert "Cannot parse JSON payload of subscription" in result.errors[0].message

    def test_pubsub_in_dict_context(self, callback_oas) -> None:
        pubsub = PubSub()

        async def main() -> Any:
            stream = await _start(build(callback_oas), QUERY, {"pubsub": pubsub})
            pubsub.publish(TOPIC, {"name": "Pixel"})
            try:
                return await stream.__anext__()
            finally:
                await stream.aclose()

        result = asyncio.run(main())
        assert result.data == {"devicesEventListener": {"name": "Pixel", "deviceType": None}}

    def test_missing_pubsub(self, callback_oas) -> None:
        result = asyncio.run(_start(build(callback_oas), QUERY, ResolveContext()))
        assert isinstance(result, ExecutionResult)
        assert result.errors[0].message == (
            f"Cannot subscribe to '{TOPIC}' without a pubsub in the execution context"
        )

    def test_custom_resolvers(self, callback_oas) -> None:
        topics: list[str] = []

        async def events(_source: Any, _info: Any, **args: Any) -> AsyncIterator[dict[str, Any]]:
            topics.append(f"{args['userName']}/{args['deviceType']}")
            yield {"name": "first"}

        def resolve(payload: dict[str, Any], _info: Any, **_args: Any) -> dict[str, Any]:
            return {"name": payload["name"].upper(), "deviceType": "custom"}

        schema = build(
            callback_oas,
            custom_subscription_resolvers={
                "Device API": {CALLBACK_URL: {"post": {"subscribe": events, "resolve": resolve}}}
            },
        )

        async def main() -> Any:
            stream = await _start(schema, QUERY, None)
            try:
                return await stream.__anext__()
            finally:
                await stream.aclose()

        result = asyncio.run(main())
        assert result.data == {"devicesEventListener": {"name": "FIRST", "deviceType": "custom"}}
        assert topics == ["ada/phone"]


class TestPubSub:
    def test_publish_without_subscribers(self) -> None:
        assert PubSub().publish("topic", 1) == 0

    def test_fan_out_and_unsubscribe(self) -> None:
        pubsub = PubSub()

        async def main() -> tuple[Any, int]:
            first = pubsub.subscribe("topic")
            second = pubsub.subscribe("topic")
            assert pubsub.publish("topic", "hello") == 2
            received = (await first.__anext__(), await second.__anext__())
            await first.aclose()
            delivered = pubsub.publish("topic", "again")
            await second.aclose()
            return received, delivered

        (a, b), delivered = asyncio.run(main())
        assert (a, b) == ("hello", "hello")
        assert delivered == 1
