# app/services/anti_cheat.py
"""
Evaluador anti-trampas.

Funciones puras que convierten la telemetría del navegador y la huella del
cliente en eventos de seguridad (con su puntaje de riesgo) y deciden si el
intento debe enviarse automáticamente.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.models.attempt import SecurityEventTypeEnum

# Umbrales de envío automático por telemetría
TAB_SWITCH_AUTO_SUBMIT_THRESHOLD = 8
FULLSCREEN_EXIT_AUTO_SUBMIT_THRESHOLD = 5
COPY_PASTE_AUTO_SUBMIT_THRESHOLD = 4

FINGERPRINT_MISMATCH_RISK = 8
SEVERE_EVENT_RISK = 10
AUTO_SUBMIT_RISK = 10

SEVERE_EVENT_TYPES = frozenset({
    SecurityEventTypeEnum.DEVTOOLS_OPEN,
    SecurityEventTypeEnum.MULTIPLE_FACE_DETECTED,
    SecurityEventTypeEnum.IP_MISMATCH,
    SecurityEventTypeEnum.USER_AGENT_MISMATCH,
})

COUNTED_EVENT_TYPES = frozenset({
    SecurityEventTypeEnum.TAB_SWITCH,
    SecurityEventTypeEnum.FULLSCREEN_EXIT,
    SecurityEventTypeEnum.COPY_PASTE,
})


@dataclass(frozen=True)
class ClientContext:
    """Huella del cliente que hace la petición (solo para comparar, nunca para autorizar)."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class HeartbeatTelemetry:
    tab_switch_count: int = 0
    fullscreen_exit_count: int = 0
    copy_paste_count: int = 0
    devtools_open: bool = False
    multiple_face_detected: bool = False

    def to_event_data(self) -> Dict[str, Any]:
        return {
            "tabSwitchCount": self.tab_switch_count,
            "fullscreenExitCount": self.fullscreen_exit_count,
            "copyPasteCount": self.copy_paste_count,
            "devToolsOpen": self.devtools_open,
            "multipleFaceDetected": self.multiple_face_detected,
        }


@dataclass(frozen=True)
class SecurityEventDraft:
    """Evento pendiente de agregar a la bitácora del intento."""
    event_type: SecurityEventTypeEnum
    risk_score: int
    event_data: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class SecurityDecision:
    force_submit: bool
    events: List[SecurityEventDraft] = field(default_factory=list)


def fingerprint_events(stored_ip: Optional[str], stored_user_agent: Optional[str],
                       client: ClientContext) -> List[SecurityEventDraft]:
    """
    Compara la huella capturada al iniciar el intento con la de la petición actual.
    Solo se registra un cambio cuando ambos valores existen.
    """
    events = []
    if stored_ip and client.ip_address and stored_ip != client.ip_address:
        events.append(SecurityEventDraft(
            event_type=SecurityEventTypeEnum.IP_MISMATCH,
            risk_score=FINGERPRINT_MISMATCH_RISK,
            event_data={"expectedIp": stored_ip, "currentIp": client.ip_address},
        ))

    if stored_user_agent and client.user_agent and stored_user_agent != client.user_agent:
        events.append(SecurityEventDraft(
            event_type=SecurityEventTypeEnum.USER_AGENT_MISMATCH,
            risk_score=FINGERPRINT_MISMATCH_RISK,
            event_data={
                "expectedUserAgent": stored_user_agent,
                "currentUserAgent": client.user_agent,
            },
        ))
    return events


def heartbeat_events(telemetry: HeartbeatTelemetry) -> List[SecurityEventDraft]:
    """Un evento por cada contador distinto de cero, con riesgo escalado por conteo."""
    events = []
    if telemetry.tab_switch_count > 0:
        events.append(SecurityEventDraft(
            event_type=SecurityEventTypeEnum.TAB_SWITCH,
            risk_score=min(6, telemetry.tab_switch_count // 2 + 1),
            event_data={"tabSwitchCount": telemetry.tab_switch_count},
        ))

    if telemetry.fullscreen_exit_count > 0:
        events.append(SecurityEventDraft(
            event_type=SecurityEventTypeEnum.FULLSCREEN_EXIT,
            risk_score=min(8, telemetry.fullscreen_exit_count // 2 + 2),
            event_data={"fullscreenExitCount": telemetry.fullscreen_exit_count},
        ))

    if telemetry.copy_paste_count > 0:
        events.append(SecurityEventDraft(
            event_type=SecurityEventTypeEnum.COPY_PASTE,
            risk_score=min(7, telemetry.copy_paste_count // 2 + 2),
            event_data={"copyPasteCount": telemetry.copy_paste_count},
        ))

    if telemetry.devtools_open:
        events.append(SecurityEventDraft(
            event_type=SecurityEventTypeEnum.DEVTOOLS_OPEN,
            risk_score=SEVERE_EVENT_RISK,
            event_data={"devToolsOpen": True},
        ))

    if telemetry.multiple_face_detected:
        events.append(SecurityEventDraft(
            event_type=SecurityEventTypeEnum.MULTIPLE_FACE_DETECTED,
            risk_score=SEVERE_EVENT_RISK,
            event_data={"multipleFaceDetected": True},
        ))
    return events


def should_force_submit(telemetry: HeartbeatTelemetry) -> bool:
    return (
        telemetry.devtools_open
        or telemetry.multiple_face_detected
        or telemetry.tab_switch_count >= TAB_SWITCH_AUTO_SUBMIT_THRESHOLD
        or telemetry.fullscreen_exit_count >= FULLSCREEN_EXIT_AUTO_SUBMIT_THRESHOLD
        or telemetry.copy_paste_count >= COPY_PASTE_AUTO_SUBMIT_THRESHOLD
    )


def evaluate_heartbeat(telemetry: HeartbeatTelemetry, stored_ip: Optional[str] = None,
                       stored_user_agent: Optional[str] = None,
                       client: Optional[ClientContext] = None) -> SecurityDecision:
    """
    Decisión completa para un heartbeat: eventos de huella primero, luego
    los de telemetría. Un cambio de huella nunca fuerza el envío por sí solo.
    """
    events = []
    if client is not None:
        events.extend(fingerprint_events(stored_ip, stored_user_agent, client))
    events.extend(heartbeat_events(telemetry))
    return SecurityDecision(force_submit=should_force_submit(telemetry), events=events)


def is_severe_event(event_type: SecurityEventTypeEnum) -> bool:
    return event_type in SEVERE_EVENT_TYPES


def default_risk_for_event(event_type: SecurityEventTypeEnum) -> int:
    if is_severe_event(event_type):
        return SEVERE_EVENT_RISK
    if event_type in COUNTED_EVENT_TYPES:
        return 5
    return 3


def auto_submit_event(reason: str, event_data: Optional[Dict[str, Any]] = None) -> SecurityEventDraft:
    payload = {"reason": reason}
    payload.update(event_data or {})
    return SecurityEventDraft(
        event_type=SecurityEventTypeEnum.AUTO_SUBMIT,
        risk_score=AUTO_SUBMIT_RISK,
        event_data=payload,
    )
