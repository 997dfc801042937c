"""
Standalone HTML exporter.

Produces a self-contained, readable web page with one ``<article>`` per
bookmark. Unlike the Netscape export this file is meant to be opened, not
imported.
"""

from typing import List

from .base import BookmarkExporter, escape_html, format_display_date
from ..data_models import BookmarkRecord

PAGE_STYLE = """
    body { font-family: system-ui, sans-serif; background: #f8fafc; color: #1e293b; margin: 0; }
    main { max-width: 56rem; margin: 0 auto; padding: 2rem 1rem; }
    article { background: #fff; border-radius: 0.75rem; box-shadow: 0 1px 3px rgba(0,0,0,.1);
              padding: 1.25rem; margin-bottom: 1rem; }
    article h3 { margin: 0 0 0.25rem; font-size: 1.125rem; }
    a { color: #2563eb; text-decoration: none; word-break: break-all; }
    a:hover { text-decoration: underline; }
    .published { margin-top: 0.5rem; font-size: 0.75rem; color: #64748b; }
    .details { margin-top: 1rem; padding-top: 1rem; border-top: 1px solid #e2e8f0; }
    h4 { margin: 0; font-size: 0.75rem; text-transform: uppercase; color: #64748b; }
    .keyword { display: inline-block; background: #dbeafe; color: #1e40af; font-size: 0.875rem;
               border-radius: 9999px; padding: 0.25rem 0.5rem; margin: 0.25rem 0.25rem 0 0; }
"""


class StandaloneHTMLExporter(BookmarkExporter):
    """Export bookmarks to a single browsable HTML page."""

    def __init__(self, title: str = "AI Bookmarks Export"):
        super().__init__()
        self.title = title

    @property
    def format_name(self) -> str:
        return "HTML"

    @property
    def file_extension(self) -> str:
        return "html"

    def _render_article(self, record: BookmarkRecord) -> str:
        url = escape_html(record.url)
        lines = [
            "      <article>",
            f'        <h3><a href="{url}" target="_blank" rel="noopener noreferrer">'
            f"{escape_html(record.title)}</a></h3>",
            f'        <a href="{url}" target="_blank" rel="noopener noreferrer">{url}</a>',
        ]

        date = format_display_date(record.created_at)
        if date:
            lines.append(f'        <div class="published">Published: {date}</div>')

        lines.append('        <div class="details">')
        lines.append("          <h4>Summary</h4>")
        lines.append(f"          <p>{escape_html(record.summary)}</p>")
        if record.keywords:
            keywords = "".join(
                f'<span class="keyword">{escape_html(k)}</span>' for k in record.keywords
            )
            lines.append("          <h4>Keywords</h4>")
            lines.append(f"          <div>{keywords}</div>")
        lines.append("        </div>")
        lines.append("      </article>")
        return "\n".join(lines)

    def render(self, records: List[BookmarkRecord]) -> str:
        articles = "\n".join(self._render_article(record) for record in records)
        title = escape_html(self.title)
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <style>{PAGE_STYLE}  </style>
</head>
<body>
  <main>
    <h1>{title}</h1>
{articles}
  </main>
</body>
</html>
"""
