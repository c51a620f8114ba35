"""Pagine HTML statiche per ispezionare raw_data / avg_data dal browser."""

from html import escape

import pandas as pd

VIEWER_TABLES = {
    "raw-data": "raw_data",
    "avg-data": "avg_data",
}

STYLE = """
<style>
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600&display=swap');
:root {
  --primary-color: #FFB84D;
  --bg-dark: #006B5F;
  --text-primary: #F8FAFC;
  --text-secondary: #B4CCC9;
  --border-color: rgba(180, 204, 201, 0.1);
  --shadow-color: rgba(0, 0, 0, 0.3);
  --gradient-1: linear-gradient(135deg, #FFB84D, #F59E0B);
  --card-hover: #007D6F;
}
body { font-family: 'Inter', sans-serif; background-color: var(--bg-dark); color: var(--text-primary); margin: 20px; }
h1 { font-size: 2.5rem; font-weight: 600; background: var(--gradient-1);
     -webkit-background-clip: text; -webkit-text-fill-color: transparent; margin-bottom: 0.5rem; }
h2 { font-weight: 600; }
.container { max-width: 1200px; margin: 0 auto; padding: 2rem; }
table { border-collapse: collapse; width: 100%; margin-bottom: 30px; border-radius: 1rem;
        box-shadow: 0 8px 32px var(--shadow-color); border: 1px solid var(--border-color); }
th, td { border: 1px solid var(--border-color); padding: 12px; text-align: left; }
th { background-color: rgba(255, 255, 255, 0.1); font-weight: 500; color: var(--primary-color); }
tr:nth-child(even) { background-color: rgba(255, 255, 255, 0.05); }
tr:hover { background-color: var(--card-hover); }
.nav { margin-bottom: 20px; }
a { color: var(--primary-color); text-decoration: none; }
ul { list-style: none; padding: 0; }
li { margin: 10px 0; padding: 10px; border-radius: 8px; border: 1px solid var(--border-color); }
li:hover { background: var(--card-hover); }
p { color: var(--text-secondary); margin-bottom: 20px; }
</style>
"""


def _page(title: str, body: str, refresh_seconds: int = 0) -> str:
    refresh = f'<meta http-equiv="refresh" content="{int(refresh_seconds)}">' if refresh_seconds else ""
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        f"<title>{escape(title)}</title>\n{STYLE}{refresh}\n"
        "</head>\n<body>\n<div class=\"container\">\n"
        f"{body}\n</div>\n</body>\n</html>\n"
    )


def render_index(tables=VIEWER_TABLES) -> str:
    items = "\n".join(
        f'<li><a href="/db-viewer/{escape(slug)}">{escape(name)}</a></li>' for slug, name in tables.items()
    )
    body = (
        "<h1>SQLite Database Viewer</h1>\n<h2>Tables</h2>\n"
        f"<ul>\n{items}\n</ul>\n"
        "<p>Click on a table name to view its data.</p>"
    )
    return _page("SQLite Database Viewer", body)


def render_table(title: str, df: pd.DataFrame, limit: int = 100, refresh_seconds: int = 30) -> str:
    back = '<div class="nav"><a href="/db-viewer">&larr; Back to Tables</a></div>'
    note = f"Showing latest {int(limit)} records"
    if refresh_seconds:
        note += f" (auto-refreshes every {int(refresh_seconds)} seconds)"
    if df is None or df.empty:
        table = "<p>No data found in this table.</p>"
    else:
        # NULL columns come back as object dtype holding None; na_rep misses them
        shown = df.astype(object).where(df.notna(), "null")
        table = shown.to_html(index=False, border=0, escape=True)
    body = f"{back}\n<h1>{escape(title)} Table</h1>\n<p>{note}</p>\n{table}\n{back}"
    return _page(f"{title} Table", body, refresh_seconds)
