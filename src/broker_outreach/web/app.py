"""FastAPI application - REST API for broker outreach."""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from broker_outreach.campaign_scheduler import CampaignScheduler
from broker_outreach.compliance import (
    CALL_NOTE,
    CAN_SPAM_CHECKLIST,
    CAN_SPAM_NOTE,
    all_state_rules,
    can_call_now,
    get_state_rules,
)
from broker_outreach.core.config import Settings
from broker_outreach.core.db_factory import create_database
from broker_outreach.core.errors import (
    ComplianceError,
    ConflictError,
    DeliveryError,
    NotFoundError,
    OutreachError,
    UpstreamError,
    ValidationError,
)
from broker_outreach.core.models import ContactMethod, OutreachStatus
from broker_outreach.core.records import RecordStore
from broker_outreach.crm import BrokerCRM, CarrierProfiles, LeadDirectory, RelationshipService
from broker_outreach.providers.base import EmailProvider, VoiceProvider
from broker_outreach.providers.fmcsa import FMCSAClient
from broker_outreach.providers.sendgrid import SendGridEmailProvider
from broker_outreach.providers.twilio import TwilioVoiceProvider
from broker_outreach.targeting import TargetingService
from broker_outreach.templates import TemplateSource, seed_default_templates
from broker_outreach.web.auth import get_current_carrier
from broker_outreach.web.schemas import (
    BulkInitiateRequest,
    FMCSASearchRequest,
    ImportLeadRequest,
    ImportMCRequest,
    InitiateRequest,
    LogContactRequest,
    LogResponseRequest,
    MarkRespondedRequest,
    PreviewRequest,
)

logger = logging.getLogger(__name__)

# Most specific first; lookup walks the exception's MRO
ERROR_STATUS: dict[type[OutreachError], int] = {
    ComplianceError: 422,
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    DeliveryError: 502,
    UpstreamError: 500,
}


async def outreach_error_handler(request: Request, exc: OutreachError) -> JSONResponse:
    status_code = next(
        (ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS), 500
    )
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def _dump(items: list) -> list[dict]:
    return [i.model_dump(mode="json") for i in items]


def create_app(
    settings: Settings | None = None,
    db: RecordStore | None = None,
    email: EmailProvider | None = None,
    voice: VoiceProvider | None = None,
    fmcsa: FMCSAClient | None = None,
) -> FastAPI:
    settings = settings or Settings()
    db = db or create_database(settings)
    email = email or SendGridEmailProvider(settings)
    voice = voice or TwilioVoiceProvider(settings)
    fmcsa = fmcsa or FMCSAClient(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await db.connect()
        await seed_default_templates(db)
        if email.dry_run:
            logger.warning("Email provider not configured; sends will be logged only")
        if voice.dry_run:
            logger.warning("Voice provider not configured; calls will be logged only")
        yield
        await email.close()
        await voice.close()
        await fmcsa.close()
        await db.close()

    app = FastAPI(title="Broker Outreach", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_exception_handler(OutreachError, outreach_error_handler)

    crm = BrokerCRM(db, settings)
    profiles = CarrierProfiles(db)
    scores = RelationshipService(db, settings)
    targeting = TargetingService(db, settings)
    leads = LeadDirectory(db, fmcsa)
    templates = TemplateSource(db)
    scheduler = CampaignScheduler(db, email, voice, settings, templates)

    # =====================================================================
    # Health
    # =====================================================================

    @app.get("/api/health")
    async def api_health():
        return {
            "status": "ok",
            "email_dry_run": email.dry_run,
            "voice_dry_run": voice.dry_run,
        }

    # =====================================================================
    # API: Carrier profile
    # =====================================================================

    @app.get("/api/carrier-profile")
    async def api_get_profile(carrier_id: str = Depends(get_current_carrier)):
        profile = await profiles.get(carrier_id)
        return {"profile": profile.model_dump(mode="json")}

    @app.post("/api/carrier-profile", status_code=201)
    async def api_create_profile(
        data: dict[str, Any] = Body(...),
        carrier_id: str = Depends(get_current_carrier),
    ):
        profile = await profiles.create(carrier_id, data)
        return {"profile": profile.model_dump(mode="json"), "message": "Profile created"}

    @app.put("/api/carrier-profile")
    async def api_update_profile(
        data: dict[str, Any] = Body(...),
        carrier_id: str = Depends(get_current_carrier),
    ):
        profile = await profiles.update(carrier_id, data)
        return {"profile": profile.model_dump(mode="json"), "message": "Profile updated"}

    # =====================================================================
    # API: Brokers
    # =====================================================================

    @app.get("/api/brokers")
    async def api_list_brokers(
        status: OutreachStatus | None = Query(None),
        sort: str | None = Query(None, pattern="^(score|recent|revenue|created)$"),
        limit: int | None = Query(None, ge=1, le=500),
        carrier_id: str = Depends(get_current_carrier),
    ):
        brokers = await crm.list_brokers(carrier_id, status, sort, limit)
        return {"brokers": _dump(brokers), "count": len(brokers)}

    @app.get("/api/brokers/search")
    async def api_search_brokers(
        q: str = Query(""),
        carrier_id: str = Depends(get_current_carrier),
    ):
        brokers = await crm.search(carrier_id, q)
        return {"brokers": _dump(brokers), "count": len(brokers)}

    @app.post("/api/brokers", status_code=201)
    async def api_create_broker(
        data: dict[str, Any] = Body(...),
        carrier_id: str = Depends(get_current_carrier),
    ):
        broker = await crm.create(carrier_id, data)
        return {"broker": broker.model_dump(mode="json"), "message": "Broker added to CRM"}

    @app.post("/api/brokers/import-lead", status_code=201)
    async def api_import_lead(
        body: ImportLeadRequest,
        carrier_id: str = Depends(get_current_carrier),
    ):
        broker = await crm.import_lead(carrier_id, body.lead_id)
        return {"broker": broker.model_dump(mode="json"), "message": "Lead imported to CRM"}

    @app.get("/api/brokers/{broker_id}")
    async def api_get_broker(broker_id: str, carrier_id: str = Depends(get_current_carrier)):
        broker = await crm.get(carrier_id, broker_id)
        return {"broker": broker.model_dump(mode="json")}

    @app.patch("/api/brokers/{broker_id}")
    async def api_update_broker(
        broker_id: str,
        data: dict[str, Any] = Body(...),
        carrier_id: str = Depends(get_current_carrier),
    ):
        broker = await crm.update(carrier_id, broker_id, data)
        return {"broker": broker.model_dump(mode="json"), "message": "Broker updated"}

    @app.delete("/api/brokers/{broker_id}")
    async def api_delete_broker(broker_id: str, carrier_id: str = Depends(get_current_carrier)):
        await crm.delete(carrier_id, broker_id)
        return {"message": "Broker deleted"}

    @app.post("/api/brokers/{broker_id}/contacts")
    async def api_log_contact(
        broker_id: str,
        body: LogContactRequest,
        carrier_id: str = Depends(get_current_carrier),
    ):
        broker = await crm.log_contact(carrier_id, broker_id, body.responded, body.notes)
        return {"broker": broker.model_dump(mode="json"), "message": "Contact logged"}

    # =====================================================================
    # API: Relationship scores
    # =====================================================================

    @app.post("/api/brokers/{broker_id}/score")
    async def api_score_broker(broker_id: str, carrier_id: str = Depends(get_current_carrier)):
        result = await scores.score(carrier_id, broker_id)
        return result.model_dump(mode="json")

    @app.post("/api/scores/score-all")
    async def api_score_all(carrier_id: str = Depends(get_current_carrier)):
        updated = await scores.score_all(carrier_id)
        message = f"Scored {updated} brokers" if updated else "No brokers in CRM"
        return {"message": message, "updated": updated}

    @app.get("/api/scores/top")
    async def api_top_brokers(
        limit: int = Query(10, ge=1, le=100),
        carrier_id: str = Depends(get_current_carrier),
    ):
        return {"brokers": _dump(await scores.top_brokers(carrier_id, limit))}

    @app.get("/api/scores/needs-attention")
    async def api_needs_attention(carrier_id: str = Depends(get_current_carrier)):
        brokers = await scores.needs_attention(carrier_id)
        return {
            "brokers": _dump(brokers),
            "count": len(brokers),
            "message": (
                f"{len(brokers)} broker(s) need attention" if brokers
                else "All brokers are up to date"
            ),
        }

    # =====================================================================
    # API: Targeting
    # =====================================================================

    @app.get("/api/targeting/recommendations")
    async def api_recommendations(carrier_id: str = Depends(get_current_carrier)):
        result = await targeting.recommendations(carrier_id)
        return result.model_dump(mode="json")

    @app.get("/api/targeting/lanes")
    async def api_lane_analysis(carrier_id: str = Depends(get_current_carrier)):
        return {"lanes": _dump(await targeting.lane_analysis(carrier_id))}

    # =====================================================================
    # API: Lead pool
    # =====================================================================

    @app.get("/api/leads/search")
    async def api_search_leads(
        q: str | None = Query(None),
        state: str | None = Query(None),
        carrier_id: str = Depends(get_current_carrier),
    ):
        found = await leads.search(q, state)
        return {"leads": _dump(found), "count": len(found)}

    @app.post("/api/leads/import-mc")
    async def api_import_mc(body: ImportMCRequest, carrier_id: str = Depends(get_current_carrier)):
        lead, already = await leads.import_mc(body.mc)
        return {
            "lead": lead.model_dump(mode="json"),
            "already_imported": already,
            "message": "Broker already in leads database" if already else "Broker imported",
        }

    @app.post("/api/leads/import-search")
    async def api_import_search(
        body: FMCSASearchRequest,
        carrier_id: str = Depends(get_current_carrier),
    ):
        saved = await leads.import_search(body.name)
        return {"leads": _dump(saved), "count": len(saved)}

    # =====================================================================
    # API: Outreach
    # =====================================================================

    @app.post("/api/outreach/initiate")
    async def api_initiate(body: InitiateRequest, carrier_id: str = Depends(get_current_carrier)):
        result = await scheduler.initiate(carrier_id, body.broker_id, body.method)
        return result.model_dump(mode="json")

    @app.post("/api/outreach/bulk")
    async def api_bulk_initiate(
        body: BulkInitiateRequest,
        carrier_id: str = Depends(get_current_carrier),
    ):
        results = await scheduler.bulk_initiate(carrier_id, body.broker_ids, body.method)
        sent = sum(1 for r in results if r.status == "sent")
        return {"message": f"Outreach sent to {sent} brokers", "results": _dump(results)}

    @app.post("/api/outreach/preview")
    async def api_preview(body: PreviewRequest, carrier_id: str = Depends(get_current_carrier)):
        preview = await scheduler.preview(carrier_id, body.broker_id, body.method, body.template_name)
        return {"preview": preview.model_dump(mode="json")}

    @app.get("/api/outreach/history")
    async def api_history(
        broker_id: str | None = Query(None),
        method: ContactMethod | None = Query(None),
        carrier_id: str = Depends(get_current_carrier),
    ):
        steps = await scheduler.history(carrier_id, broker_id, method)
        return {"campaigns": _dump(steps), "count": len(steps)}

    @app.get("/api/outreach/templates")
    async def api_templates(carrier_id: str = Depends(get_current_carrier)):
        return {"templates": _dump(await templates.list_templates(carrier_id))}

    @app.post("/api/outreach/mark-responded")
    async def api_mark_responded(
        body: MarkRespondedRequest,
        carrier_id: str = Depends(get_current_carrier),
    ):
        result = await scheduler.mark_responded(
            carrier_id, body.broker_id, body.response_text, body.sentiment
        )
        return {
            **result.model_dump(mode="json"),
            "message": "Broker response recorded. Follow-ups cancelled.",
        }

    @app.post("/api/outreach/log-response")
    async def api_log_response(
        body: LogResponseRequest,
        carrier_id: str = Depends(get_current_carrier),
    ):
        broker = await scheduler.log_response(
            carrier_id, body.broker_id, body.response_text, body.next_action
        )
        return {"broker": broker.model_dump(mode="json"), "message": "Response logged"}

    @app.get("/api/outreach/stats")
    async def api_stats(carrier_id: str = Depends(get_current_carrier)):
        return {"stats": (await scheduler.stats(carrier_id)).model_dump(mode="json")}

    @app.post("/api/outreach/sweep")
    async def api_sweep(authorization: str | None = Header(None)):
        if settings.cron_secret:
            expected = f"Bearer {settings.cron_secret}"
            if not authorization or not hmac.compare_digest(authorization, expected):
                raise HTTPException(status_code=401, detail="Unauthorized")
        result = await scheduler.sweep_due_follow_ups()
        return result.model_dump(mode="json")

    # =====================================================================
    # API: Compliance
    # =====================================================================

    @app.get("/api/compliance/check-call")
    async def api_check_call(state: str = Query(..., min_length=2, max_length=2)):
        return {**can_call_now(state).model_dump(mode="json"), "note": CALL_NOTE}

    @app.get("/api/compliance/check-email")
    async def api_check_email():
        return {
            "can_spam_checklist": [item.model_dump() for item in CAN_SPAM_CHECKLIST],
            "b2b_note": CAN_SPAM_NOTE,
            "disclaimer": "This is informational guidance, not legal advice.",
        }

    @app.get("/api/compliance/state-rules")
    async def api_state_rules(state: str = Query(..., min_length=2, max_length=2)):
        return {
            "rules": get_state_rules(state).model_dump(mode="json"),
            "can_call_now": can_call_now(state).model_dump(mode="json"),
        }

    @app.get("/api/compliance/all-states")
    async def api_all_states():
        return {"states": all_state_rules()}

    return app


app = create_app()
