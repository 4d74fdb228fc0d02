from django.db import connection
from django.http import JsonResponse

from apps.payments.http_adapters import _provider_cb


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except Exception:
        db_ok = False

    # an open provider circuit degrades checkout but the service stays live
    circuit = _provider_cb.state
    code = 200 if db_ok else 503
    return JsonResponse(
        {
            "ok": db_ok,
            "components": {
                "db": {"ok": db_ok},
                "payment_provider": {"ok": circuit != "OPEN", "circuit": circuit},
            },
        },
        status=code,
    )
