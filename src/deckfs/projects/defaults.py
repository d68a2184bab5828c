"""Default content for new projects and pages."""

from __future__ import annotations

from html import escape

from deckfs.projects.models import (
    Page,
    Project,
    ProjectConfig,
    Theme,
    generate_id,
    utcnow,
)

UNTITLED_PROJECT = "Untitled Project"
TITLE_PAGE_SUFFIX = "'s title page"

TITLE_PAGE_CSS = """/* Page styles */
.slide {
  width: 100vw;
  height: 100vh;
  display: flex;
  flex-direction: column;
  justify-content: center;
  align-items: center;
  padding: 40px;
  box-sizing: border-box;
  background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
  color: white;
}
"""

PAGE_CSS = """/* Page styles */
body {
  font-family: Arial, sans-serif;
  margin: 0;
  padding: 0;
  background: #f8f9fa;
}

h2 {
  border-bottom: 2px solid #409eff;
  padding-bottom: 10px;
}
"""

GLOBAL_STYLES = """/* Global styles */
body {
  font-family: Arial, sans-serif;
  margin: 0;
  padding: 0;
  background: #f8f9fa;
}

.slide {
  width: 100vw;
  height: 100vh;
  display: flex;
  flex-direction: column;
  justify-content: center;
  align-items: center;
  padding: 40px;
  box-sizing: border-box;
}
"""

GLOBAL_SCRIPTS = """// Global scripts
console.log('Deck loaded');
"""

# Files written into global/ when a project directory is created
GLOBAL_FILES = {
    "styles.css": GLOBAL_STYLES,
    "scripts.js": GLOBAL_SCRIPTS,
}


def default_config() -> ProjectConfig:
    return ProjectConfig()


def default_theme() -> Theme:
    return Theme()


def title_page_name(project_name: str) -> str:
    return f"{project_name}{TITLE_PAGE_SUFFIX}"


def make_title_page(project_name: str) -> Page:
    """Build the single page every new project starts with."""
    now = utcnow()
    html = (
        '<div class="slide">\n'
        f'  <h1 style="font-size: 48px; margin-bottom: 20px;">{escape(project_name)}</h1>\n'
        '  <p style="font-size: 24px;">Welcome to your new deck</p>\n'
        "</div>\n"
    )
    return Page(
        id=generate_id(),
        name=title_page_name(project_name),
        order=0,
        html=html,
        css=TITLE_PAGE_CSS,
        js="// Page script\n",
        created_at=now,
        updated_at=now,
    )


def make_page(name: str, order: int) -> Page:
    """Build a new content page with placeholder markup."""
    now = utcnow()
    html = (
        '<div style="padding: 40px; min-height: 400px;">\n'
        f"  <h2>{escape(name)}</h2>\n"
        f"  <p>This is page {order + 1}. Edit the markup to add content.</p>\n"
        "</div>\n"
    )
    return Page(
        id=generate_id(),
        name=name,
        order=order,
        html=html,
        css=PAGE_CSS,
        js=None,
        created_at=now,
        updated_at=now,
    )


def new_project(name: str, description: str | None = None, path: str = "") -> Project:
    """Build a project with default config/theme and a title page."""
    now = utcnow()
    project = Project(
        id=generate_id(),
        name=name,
        description=description,
        created_at=now,
        updated_at=now,
        config=default_config(),
        theme=default_theme(),
        path=path,
    )
    title = make_title_page(name)
    project.pages.append(title)
    project.current_page_id = title.id
    return project
