"""GET / - human-facing status page"""

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from zaim_exporter.api.dependencies import get_authorization
from zaim_exporter.infrastructure.clients.oauth import AuthorizationManager

router = APIRouter()

PAGE_STYLE = """
    <style>
        body { font-family: Arial, sans-serif; margin: 40px; }
        .status { padding: 10px; margin: 20px 0; border-radius: 5px; }
        .authenticated { background-color: #d4edda; color: #155724; }
        .not-authenticated { background-color: #f8d7da; color: #721c24; }
        button { padding: 10px 20px; margin: 10px 0; font-size: 16px; cursor: pointer; }
    </style>
"""

AUTHENTICATED_BLOCK = """
    <div class="status authenticated">Authenticated with Zaim API</div>
    <p>Metrics are available at <a href="/metrics">/metrics</a></p>
    <button onclick="resetAuth()">Reset Authentication</button>
"""

UNAUTHENTICATED_BLOCK = """
    <div class="status not-authenticated">Not authenticated</div>
    <a href="/zaim/auth/start"><button>Authenticate with Zaim</button></a>
"""

INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Zaim Prometheus Exporter</title>
{style}
</head>
<body>
    <h1>Zaim Prometheus Exporter</h1>
{status_block}
    <h2>Available Endpoints</h2>
    <ul>
        <li><a href="/metrics">/metrics</a> - Prometheus metrics</li>
        <li><a href="/zaim/auth/status">/zaim/auth/status</a> - Authentication status</li>
        <li><a href="/health">/health</a> - Health check</li>
        <li><a href="/ready">/ready</a> - Readiness check</li>
    </ul>
    <script>
        function resetAuth() {{
            if (confirm('Are you sure you want to reset authentication?')) {{
                fetch('/zaim/auth/reset', {{ method: 'POST' }})
                    .then(response => response.json())
                    .then(data => {{ alert(data.message); location.reload(); }})
                    .catch(error => alert('Error: ' + error));
            }}
        }}
    </script>
</body>
</html>"""

SUCCESS_HTML = f"""<!DOCTYPE html>
<html>
<head>
    <title>Authentication Successful</title>
{PAGE_STYLE}
</head>
<body>
    <div class="status authenticated">
        <h1>Authentication Successful!</h1>
        <p>You have successfully authenticated with Zaim API.</p>
        <p>Metrics are now available at <a href="/metrics">/metrics</a></p>
        <a href="/"><button>Back to Home</button></a>
    </div>
</body>
</html>"""


@router.get("/", response_class=HTMLResponse)
def index(authorization: AuthorizationManager = Depends(get_authorization)):
    status_block = AUTHENTICATED_BLOCK if authorization.is_authenticated() else UNAUTHENTICATED_BLOCK
    return HTMLResponse(INDEX_HTML.format(style=PAGE_STYLE, status_block=status_block))
