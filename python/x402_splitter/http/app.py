"""Starlette application exposing the splitter protocol over HTTP."""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..analytics import collect_stats, payment_history, usage_summary
from ..coordinator import AccessRequest, AccessState
from ..errors import InvalidRequest, SplitterError
from ..mechanisms.svm.splitter.constants import PAYER_IDENTITY_HEADER, PROOF_SIGNATURE_HEADER, ROLES
from ..mechanisms.svm.splitter.types import PaymentRecord, SplitterConfig
from ..mechanisms.svm.utils import format_amount
from ..schemas import (
    BuildTransactionRequest,
    BuildTransactionResponse,
    CreateSplitterRequest,
    ErrorBody,
    InitializeSplitterRequest,
    PaymentView,
    ProtectedResourceRequest,
    SplitShare,
    SplitTable,
    SplitterView,
    StatsView,
    UpdateSharesRequest,
    UpdateTransactionRequest,
)
from ..services import SplitterServices

logger = logging.getLogger(__name__)


def _services(request: Request) -> SplitterServices:
    return request.app.state.services


async def _parse(request: Request, model: type[BaseModel]):
    try:
        data = await request.json()
    except ValueError as e:
        raise InvalidRequest(f"body is not valid JSON: {e}") from e
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidRequest(str(e)) from e


def _splitter_view(config: SplitterConfig) -> dict:
    return SplitterView.model_validate(config.to_dict()).to_wire()


def _payment_view(record: PaymentRecord) -> PaymentView:
    return PaymentView.model_validate(record.to_dict())


# --- Health ---


async def health(request: Request) -> JSONResponse:
    services = _services(request)
    return JSONResponse(
        {
            "status": "ok",
            "network": services.settings.network,
            "programId": services.settings.program_id,
            "settlementMode": services.settings.settlement_mode.value,
            "splitters": services.splitters.count(),
        }
    )


# --- Splitters ---


async def create_splitter(request: Request) -> JSONResponse:
    body = await _parse(request, CreateSplitterRequest)
    config = await _services(request).registry.create(body)
    return JSONResponse(_splitter_view(config), status_code=201)


async def get_splitter(request: Request) -> JSONResponse:
    config = _services(request).registry.get(request.path_params["splitter_id"])
    return JSONResponse(_splitter_view(config))


async def list_by_authority(request: Request) -> JSONResponse:
    configs = _services(request).registry.list_by_authority(request.path_params["authority"])
    return JSONResponse([_splitter_view(c) for c in configs])


async def list_splitters(request: Request) -> JSONResponse:
    configs = _services(request).registry.list_all()
    return JSONResponse([_splitter_view(c) for c in configs])


async def update_splitter(request: Request) -> JSONResponse:
    body = await _parse(request, UpdateSharesRequest)
    config = await _services(request).registry.update_shares(
        request.path_params["splitter_id"], body
    )
    return JSONResponse(_splitter_view(config))


async def initialize_splitter(request: Request) -> JSONResponse:
    body = await _parse(request, InitializeSplitterRequest)
    config = await _services(request).registry.mark_initialized(
        request.path_params["splitter_id"], body.signature
    )
    return JSONResponse(_splitter_view(config))


async def initialize_transaction(request: Request) -> JSONResponse:
    services = _services(request)
    config = services.registry.get(request.path_params["splitter_id"])
    return JSONResponse(
        {
            "splitterId": config.splitter_id,
            "transaction": services.builder.build_initialize(config),
        }
    )


async def update_transaction(request: Request) -> JSONResponse:
    body = await _parse(request, UpdateTransactionRequest)
    services = _services(request)
    config = services.registry.get(request.path_params["splitter_id"])
    return JSONResponse(
        {
            "splitterId": config.splitter_id,
            "transaction": services.builder.build_update_shares(
                config, body.merchant_share, body.agent_share, body.platform_share
            ),
        }
    )


# --- Payments ---


async def splitter_payments(request: Request) -> JSONResponse:
    services = _services(request)
    splitter_id = request.path_params["splitter_id"]
    services.registry.get(splitter_id)
    try:
        limit = int(request.query_params.get("limit", "50"))
        records = payment_history(services.records, splitter_id, limit)
    except ValueError as e:
        raise InvalidRequest(f"invalid limit: {e}") from e
    return JSONResponse([_payment_view(r).to_wire() for r in records])


async def stats(request: Request) -> JSONResponse:
    services = _services(request)
    result = collect_stats(services.splitters, services.records)
    view = StatsView(
        total_splitters=result.total_splitters,
        total_payments=result.total_payments,
        unique_merchants=result.unique_merchants,
        unique_agents=result.unique_agents,
        unique_platforms=result.unique_platforms,
        total_volume=result.total_volume,
        recent_payments=[_payment_view(r) for r in result.recent_payments],
    )
    return JSONResponse(view.to_wire())


async def build_split_transaction(request: Request) -> JSONResponse:
    services = _services(request)
    body = await _parse(request, BuildTransactionRequest)
    config = services.registry.get(body.splitter_id)
    built = await services.builder.build(config, body.payer_identity, body.amount)

    shares = {
        role: SplitShare(address=address, amount=amount, percentage=share)
        for role, address, amount, share in zip(
            ROLES, config.recipients, built.splits.as_tuple(), config.shares
        )
    }
    response = BuildTransactionResponse(
        transaction=built.transaction,
        splits=SplitTable(**shares),
        mode=built.mode.value,
    )
    return JSONResponse(response.to_wire())


async def protected_resource(request: Request) -> JSONResponse:
    """Demo resource gated behind a split payment."""
    services = _services(request)
    body = await _parse(request, ProtectedResourceRequest)

    # 1. Run the payment protocol
    decision = await services.coordinator.handle(
        AccessRequest(
            resource=str(request.url),
            splitter_id=body.splitter_id,
            proof=request.headers.get(PROOF_SIGNATURE_HEADER),
            payer=request.headers.get(PAYER_IDENTITY_HEADER),
        )
    )
    if decision.state is not AccessState.GRANTED:
        return JSONResponse(decision.challenge.to_wire(), status_code=402)

    # 2. Serve the resource with the applied split
    config = decision.config
    record = decision.record
    decimals = services.settings.decimals
    splits = {
        role: f"{share}% ({format_amount(amount, decimals)} USDC) -> {address}"
        for role, share, amount, address in zip(
            ROLES,
            config.shares,
            (record.merchant_amount, record.agent_amount, record.platform_amount),
            config.recipients,
        )
    }

    return JSONResponse(
        {
            "success": True,
            "cached": decision.replayed,
            "data": {
                "message": "Payment successful! Here is your premium data.",
                "requestedAt": datetime.now(timezone.utc).isoformat(),
                "splitterUsed": config.splitter_id,
                "paymentSignature": record.signature,
                "payment": _payment_view(record).to_wire(),
                "splits": splits,
                "demoData": {
                    "result": "This is the protected premium data you requested",
                    "items": ["Premium data 1", "Premium data 2", "Premium data 3"],
                    "analytics": usage_summary(services.usage, services.records, config.splitter_id),
                },
            },
        }
    )


# --- Errors ---


async def splitter_error(request: Request, exc: SplitterError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    body = ErrorBody(error=exc.reason, message=exc.message or exc.reason, retryable=exc.retryable)
    return JSONResponse(body.to_wire(), status_code=exc.status_code)


def create_app(services: SplitterServices) -> Starlette:
    """Create the Starlette app serving the splitter API.

    Args:
        services: Components shared by all requests.

    Returns:
        The ASGI application.
    """
    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/api/splitter/create", create_splitter, methods=["POST"]),
            Route("/api/splitter/{splitter_id}", get_splitter, methods=["GET"]),
            Route("/api/splitter/{splitter_id}/update", update_splitter, methods=["POST"]),
            Route("/api/splitter/{splitter_id}/initialize", initialize_splitter, methods=["POST"]),
            Route(
                "/api/splitter/{splitter_id}/initialize-tx",
                initialize_transaction,
                methods=["GET"],
            ),
            Route(
                "/api/splitter/{splitter_id}/update-tx",
                update_transaction,
                methods=["POST"],
            ),
            Route("/api/splitter/{splitter_id}/payments", splitter_payments, methods=["GET"]),
            Route("/api/splitters", list_splitters, methods=["GET"]),
            Route("/api/splitters/{authority}", list_by_authority, methods=["GET"]),
            Route("/api/stats", stats, methods=["GET"]),
            Route("/api/payment/build-split-tx", build_split_transaction, methods=["POST"]),
            Route("/api/demo/get-data", protected_resource, methods=["POST"]),
        ],
        exception_handlers={SplitterError: splitter_error},
    )
    app.state.services = services
    return app
