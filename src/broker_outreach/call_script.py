"""Cold-call scripts for brokers, as plain text and as TwiML for text-to-speech."""

from __future__ import annotations

from xml.sax.saxutils import escape

from pydantic import BaseModel

from broker_outreach.core.models import BrokerRecord, CarrierProfile

VOICE = "Polly.Joanna"
LANGUAGE = "en-US"


class CallScript(BaseModel):
    greeting: str
    introduction: str
    pitch: str
    closing: str
    full_script: str
    twiml: str


def _say(text: str) -> str:
    return f'  <Say voice="{VOICE}" language="{LANGUAGE}">{escape(text)}</Say>'


def generate_call_script(carrier: CarrierProfile, broker: BrokerRecord) -> CallScript:
    carrier_name = carrier.owner_name or carrier.company_name or "an owner-operator"
    company = carrier.company_name or ""
    equipment = (carrier.equipment_types[0] if carrier.equipment_types else "").replace("_", " ")
    equipment = equipment or "dry van"
    if carrier.home_base_city and carrier.home_base_state:
        home_area = f"{carrier.home_base_city}, {carrier.home_base_state}"
    else:
        home_area = "the area"
    lanes = ", ".join(carrier.preferred_lanes) or "flexible routes"
    broker_company = broker.company_name or "your company"
    broker_contact = broker.contact_name or "dispatch"

    greeting = f"Hi, may I speak with {broker_contact}?"
    introduction = (
        f"My name is {carrier_name}{f' with {company}' if company else ''}. "
        f"I'm an owner-operator running a {equipment} out of {home_area}."
    )
    mc = f"my MC number {carrier.mc_number} is" if carrier.mc_number else "my authority is"
    pitch = (
        f"I'm looking to establish a relationship with {broker_company}. "
        f"I run {lanes} regularly and I'm very reliable. I'm always on time, "
        f"I communicate well, and {mc} clean and verifiable. "
        "I'd love to get on your carrier list if you have any freight that would be a good fit."
    )
    closing = (
        "Can I send you my packet? What email should I use? "
        "And is there a specific contact person I should follow up with? I appreciate your time."
    )

    twiml = "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<Response>",
        _say(greeting),
        '  <Pause length="2"/>',
        _say(introduction),
        '  <Pause length="1"/>',
        _say(pitch),
        '  <Pause length="1"/>',
        _say(closing),
        "</Response>",
    ])

    return CallScript(
        greeting=greeting,
        introduction=introduction,
        pitch=pitch,
        closing=closing,
        full_script="\n\n".join([greeting, introduction, pitch, closing]),
        twiml=twiml,
    )
