"""
Action adapters for Message Broker SDK.

An action is a plain function (or coroutine function) implementing some piece
of business logic. The adapters below turn actions into consume handlers:
they reject error envelopes, derive the action's params from the incoming
payload and wrap whatever the action returns into a reply payload.
"""

import inspect
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Dict, Optional

from ..exceptions import InvalidPayloadError
from .payload import MessagePayload, make_payload


Params = Dict[str, Any]
ActionWithoutParams = Callable[[], Any]
ActionWithParams = Callable[[Params], Any]
PayloadParser = Callable[[MessagePayload], Any]
RoutedPayloadParser = Callable[[str, MessagePayload], Any]
ErrorHandler = Callable[[BaseException], Any]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _default_params(payload: MessagePayload) -> Params:
    data = payload.data
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise InvalidPayloadError(
            f"Action params must be a mapping, got {type(data).__name__}",
            operation="invoke_action"
        )
    return dict(data)


def invoke_action(action: ActionWithoutParams) -> Callable[[MessagePayload], Awaitable[MessagePayload]]:
    """
    Map an action without params to a consume handler.

    Raises:
        RemoteError: From the handler, when the received payload carries an error
    """
    async def handler(payload: MessagePayload) -> MessagePayload:
        payload.raise_for_error()
        return make_payload(await _resolve(action()))

    return handler


def invoke_action_with_payload(
    action: ActionWithParams,
    parser: Optional[PayloadParser] = None
) -> Callable[[MessagePayload], Awaitable[MessagePayload]]:
    """
    Map an action taking params to a consume handler.

    Args:
        action: Called with the params derived from each payload
        parser: Maps the payload to the action's params; a copy of
            ``payload.data`` is used when omitted

    Raises:
        RemoteError: From the handler, when the received payload carries an error
    """
    async def handler(payload: MessagePayload) -> MessagePayload:
        payload.raise_for_error()
        params = await _resolve(parser(payload)) if parser else _default_params(payload)
        return make_payload(await _resolve(action(params)))

    return handler


def invoke_action_with_routing_key_and_payload(
    action: ActionWithParams,
    parser: Optional[RoutedPayloadParser] = None,
    error_handler: Optional[ErrorHandler] = None
) -> Callable[[str, MessagePayload], Awaitable[MessagePayload]]:
    """
    Map an action taking params to an exchange consume handler.

    Args:
        action: Called with the params derived from each payload
        parser: Maps the routing key and the payload to the action's params;
            a copy of ``payload.data`` is used when omitted
        error_handler: Notified of every error before it is re-raised
    """
    async def handler(routing_key: str, payload: MessagePayload) -> MessagePayload:
        try:
            payload.raise_for_error()
            if parser:
                params = await _resolve(parser(routing_key, payload))
            else:
                params = _default_params(payload)
            return make_payload(await _resolve(action(params)))
        except Exception as e:
            if error_handler is not None:
                await _resolve(error_handler(e))
            raise

    return handler
