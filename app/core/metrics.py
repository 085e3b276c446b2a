# app/core/metrics.py
from prometheus_client import Counter, Histogram

# Métricas de Prometheus para el API
exam_portal_requests_total = Counter(
    'exam_portal_requests_total',
    'Total Exam Portal API requests',
    ['method', 'endpoint', 'status']
)

exam_portal_request_duration_seconds = Histogram(
    'exam_portal_request_duration_seconds',
    'Exam Portal API request duration in seconds',
    ['method', 'endpoint']
)

# Métricas del ciclo de vida de intentos
exam_attempts_started_total = Counter(
    'exam_attempts_started_total',
    'Exam attempts started'
)

exam_attempts_evaluated_total = Counter(
    'exam_attempts_evaluated_total',
    'Exam attempts evaluated',
    ['mode']
)

exam_attempts_auto_submitted_total = Counter(
    'exam_attempts_auto_submitted_total',
    'Exam attempts force-submitted by the server',
    ['reason']
)

attempt_security_events_total = Counter(
    'attempt_security_events_total',
    'Security events appended to attempt logs',
    ['event_type']
)

# Métricas de certificados
certificates_issued_total = Counter(
    'certificates_issued_total',
    'Certificate issuance outcomes',
    ['outcome']
)
