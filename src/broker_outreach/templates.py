"""Outreach email templates: variables, Jinja2 rendering, and the template source."""

from __future__ import annotations

import logging
from typing import Any

from jinja2 import Environment, TemplateError

from broker_outreach.core.errors import NotFoundError, ValidationError
from broker_outreach.core.models import (
    BrokerRecord,
    CarrierProfile,
    EmailTemplate,
    TemplateCategory,
)
from broker_outreach.core.records import RecordStore

logger = logging.getLogger(__name__)

INITIAL_TEMPLATE = "initial_outreach"

_env = Environment(autoescape=False, keep_trailing_newline=True)


# ---------------------------------------------------------------------------
# Variables and rendering
# ---------------------------------------------------------------------------


def build_template_vars(carrier: CarrierProfile, broker: BrokerRecord) -> dict[str, str]:
    """Placeholder values for a carrier writing to a broker, with display fallbacks."""
    if carrier.preferred_lanes:
        lanes = "\n".join(f"  • {lane}" for lane in carrier.preferred_lanes)
    else:
        lanes = "  • Flexible on lanes, open to opportunities"

    equipment = carrier.equipment_types[0] if carrier.equipment_types else ""
    equipment = equipment.replace("_", " ") or "Dry Van"

    return {
        "carrier_name": carrier.owner_name or carrier.company_name or "Owner-Operator",
        "company_name": carrier.company_name or "Independent Carrier",
        "mc_number": carrier.mc_number or "N/A",
        "dot_number": carrier.dot_number or "N/A",
        "phone": carrier.phone or "N/A",
        "email": carrier.email or "N/A",
        "equipment": equipment,
        "home_city": carrier.home_base_city or "My area",
        "home_state": carrier.home_base_state or "My state",
        "preferred_lanes_list": lanes,
        "broker_contact_name": broker.contact_name or "Dispatch Team",
        "broker_company": broker.company_name or "Your company",
        "broker_mc": broker.mc_number or "",
    }


def render(source: str, variables: dict[str, Any]) -> str:
    """Render a ``{{var}}`` template. Unknown placeholders render empty."""
    try:
        return _env.from_string(source).render(**variables)
    except TemplateError as e:
        raise ValidationError(f"Template could not be rendered: {e}") from e


def render_template(template: EmailTemplate, variables: dict[str, Any]) -> tuple[str, str]:
    """Return ``(subject, body)`` for ``template``."""
    return render(template.subject_template, variables), render(template.body_template, variables)


# ---------------------------------------------------------------------------
# Default template set
# ---------------------------------------------------------------------------

_SIGNATURE = """
{{carrier_name}}
{{company_name}}
MC# {{mc_number}} | DOT# {{dot_number}}
{{phone}} | {{email}}"""

DEFAULT_TEMPLATES: tuple[EmailTemplate, ...] = (
    EmailTemplate(
        name=INITIAL_TEMPLATE,
        category=TemplateCategory.INITIAL,
        sequence_step=1,
        delay_days=0,
        subject_template="{{equipment}} carrier out of {{home_city}}, {{home_state}} - MC# {{mc_number}}",
        body_template="""Hi {{broker_contact_name}},

I'm {{carrier_name}} with {{company_name}}, running a {{equipment}} out of {{home_city}}, {{home_state}}.
I'd like to get set up with {{broker_company}} and start hauling for you.

Lanes I run regularly:
{{preferred_lanes_list}}

My authority is active and my packet is ready to send. What's the best way to get onboarded?

Thanks,
""" + _SIGNATURE,
    ),
    EmailTemplate(
        name="follow_up_day_3",
        category=TemplateCategory.FOLLOW_UP,
        sequence_step=2,
        delay_days=3,
        subject_template="Following up - {{equipment}} capacity for {{broker_company}}",
        body_template="""Hi {{broker_contact_name}},

Just following up on my note from a few days ago. I still have {{equipment}} capacity
out of {{home_city}}, {{home_state}} and would like to help {{broker_company}} cover loads.

Happy to send my carrier packet whenever it's convenient.
""" + _SIGNATURE,
    ),
    EmailTemplate(
        name="follow_up_day_7",
        category=TemplateCategory.FOLLOW_UP,
        sequence_step=3,
        delay_days=7,
        subject_template="Still available for {{broker_company}} freight",
        body_template="""Hi {{broker_contact_name}},

Checking in again. These are the lanes I run most:
{{preferred_lanes_list}}

If anything comes up on these, I'm a call away.
""" + _SIGNATURE,
    ),
    EmailTemplate(
        name="follow_up_day_14",
        category=TemplateCategory.FOLLOW_UP,
        sequence_step=4,
        delay_days=14,
        subject_template="Last check-in from {{company_name}}",
        body_template="""Hi {{broker_contact_name}},

I don't want to crowd your inbox, so this is my last note for now. If {{broker_company}}
ever needs a reliable {{equipment}} out of {{home_state}}, keep MC# {{mc_number}} on file.
""" + _SIGNATURE,
    ),
)


async def seed_default_templates(db: RecordStore) -> int:
    """Insert any default template not yet stored. Returns how many were added."""
    added = 0
    for template in DEFAULT_TEMPLATES:
        existing = await db.find_templates_by_name(template.name)
        if any(t.carrier_id is None for t in existing):
            continue
        await db.insert_template(template)
        added += 1
    if added:
        logger.info("Seeded %d default email templates", added)
    return added


# ---------------------------------------------------------------------------
# Template source
# ---------------------------------------------------------------------------


class TemplateSource:
    """Reads templates from the record store."""

    def __init__(self, db: RecordStore):
        self.db = db

    async def get_templates(self, category: TemplateCategory) -> list[EmailTemplate]:
        """Default templates of ``category`` ordered by sequence step."""
        return await self.db.get_templates(category)

    async def get_template(self, name: str, carrier_id: str | None = None) -> EmailTemplate:
        """Template by name; a carrier's own copy wins over the default."""
        candidates = await self.db.find_templates_by_name(name)
        own = [t for t in candidates if carrier_id and t.carrier_id == carrier_id]
        defaults = [t for t in candidates if t.carrier_id is None]
        if own:
            return own[0]
        if defaults:
            return defaults[0]
        raise NotFoundError(f'Template "{name}" not found')

    async def list_templates(self, carrier_id: str) -> list[EmailTemplate]:
        return await self.db.list_templates(carrier_id)
