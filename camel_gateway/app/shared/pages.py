"""
HTML pages served inside the Onshape right side panel
"""
from html import escape
from typing import List, Optional
from urllib.parse import quote

from fastapi.responses import HTMLResponse

PAGE_TEMPLATE = """
<!DOCTYPE html>
<html>
    <head>
        <meta charset="utf-8">
        <title>{title}</title>
        <style>
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                margin: 0;
                padding: 1rem;
                background: #f5f5f5;
            }}
            .container {{
                background: white;
                padding: 1rem;
                border-radius: 8px;
                box-shadow: 0 2px 8px rgba(0,0,0,0.1);
            }}
            .error {{ color: #dc3545; }}
            ul {{ padding-left: 1.2rem; }}
        </style>
    </head>
    <body>
        <div class="container">
            {body}
        </div>
    </body>
</html>
"""


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        content=PAGE_TEMPLATE.format(title=escape(title), body=body),
        status_code=status_code,
    )


def render_panel(
    base_path: str,
    files: Optional[List[str]] = None,
    error: Optional[str] = None,
    query: str = "",
) -> HTMLResponse:
    """
    Render the file list panel

    Args:
        base_path: Action path of the element (without trailing /panel)
        files: File names to link, if the index could be read
        error: Message shown instead of the list
        query: Query string appended to download links
    """
    if error is not None:
        return _page("Camel", f'<p class="error">{escape(error)}</p>')

    suffix = f"?{query}" if query else ""
    if not files:
        body = "<p>No files have been generated in this Part Studio yet.</p>"
    else:
        items = "\n".join(
            f'<li><a href="{escape(base_path)}/f/{quote(name, safe="")}/download{escape(suffix)}">'
            f"{escape(name)}</a></li>"
            for name in files
        )
        body = (
            f"<h3>Files</h3><ul>{items}</ul>"
            f'<p><a href="{escape(base_path)}/download-all{escape(suffix)}">Download all</a></p>'
        )
    return _page("Camel", body)


def render_oauth_denied() -> HTMLResponse:
    return _page(
        "Authorization Denied",
        "<h3>Authorization Denied</h3>"
        "<p>Camel needs access to your Onshape documents to read generated files. "
        "Open the panel again to retry.</p>",
        status_code=403,
    )
