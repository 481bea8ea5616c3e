"""
Preview Renderer - turns a Project into a self-contained listing HTML document
The output is used both for the sandboxed preview and for copy-paste export
into the marketplace listing editor, so it carries only inline styles.
"""
import html
import json
import re
from typing import List, Optional
from urllib.parse import urlparse

from ..schemas import DEFAULT_SHIPPING_POLICY, Project, ShippingPolicy

SHIPPING_TEXT = {
    ShippingPolicy.SAME_DAY: "Same Business Day",
    ShippingPolicy.D2_5: "2-5 Business Days",
    ShippingPolicy.D15_20: "15-20 Business Days",
}

RETURN_POLICY_TEXT = (
    "We offer a 30-day return policy. Item must be in original, unused condition "
    "with all tags and packaging."
)

BOLD_PATTERN = re.compile(r"\*([^*\n]+)\*")
BOLD_TAG_PATTERN = re.compile(r"<\s*(strong|b)\b[^>]*>(.*?)<\s*/\s*\1\s*>", re.IGNORECASE | re.DOTALL)
BLOCK_TAG_PATTERN = re.compile(r"<\s*(br|/p|/li|/div|/h[1-6])\b[^>]*>", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<[^>]+>")

STYLES = """
body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, "Helvetica Neue", Arial, sans-serif; color: #222222; background-color: #FFFFFF; margin: 0; padding: 0; }
.lw-container { max-width: 960px; margin: 0 auto; padding: 24px; }
.lw-title { font-size: 2rem; font-weight: 600; margin: 0 0 1.5rem 0; }
.lw-image-grid { display: grid; gap: 12px; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); margin-bottom: 2rem; }
.lw-image-item { aspect-ratio: 1 / 1; border-radius: 8px; overflow: hidden; box-shadow: 0 2px 4px rgba(0, 0, 0, 0.05); }
.lw-image-item.lw-cover { grid-column: span 2; grid-row: span 2; }
.lw-image-item img { width: 100%; height: 100%; object-fit: cover; display: block; }
.lw-store { display: flex; align-items: center; gap: 16px; margin-bottom: 1.5rem; }
.lw-logo { width: 64px; height: 64px; border-radius: 50%; background-color: #EBEBEB; display: flex; align-items: center; justify-content: center; overflow: hidden; font-weight: 600; font-size: 1.5rem; color: #484848; }
.lw-logo img { width: 100%; height: 100%; object-fit: contain; }
.lw-card { border-radius: 12px; box-shadow: 0 4px 10px rgba(0, 0, 0, 0.05); padding: 24px; margin-bottom: 1.5rem; }
.lw-card h2 { font-size: 1.5rem; font-weight: 600; margin: 0 0 1rem 0; }
.lw-description p { margin: 0 0 1rem 0; line-height: 1.6; }
.lw-highlights { list-style: none; padding: 0; margin: 0; }
.lw-highlights li { margin-bottom: 0.75rem; padding-left: 1.5rem; position: relative; }
.lw-highlights li::before { content: "\\2713"; color: #00A699; position: absolute; left: 0; }
.lw-policy h3 { font-size: 1rem; font-weight: 600; margin: 0 0 0.25rem 0; }
.lw-policy p { margin: 0 0 1rem 0; color: #484848; }
""".strip()


def shipping_text(policy: Optional[ShippingPolicy]) -> str:
    """Display text of a shipping policy; unknown or missing falls back to 2-5 days"""
    try:
        policy = ShippingPolicy(policy) if policy is not None else DEFAULT_SHIPPING_POLICY
    except ValueError:
        policy = DEFAULT_SHIPPING_POLICY
    return SHIPPING_TEXT[policy]


def emphasize(text: str) -> str:
    """
    Escape text and apply the one supported markup: *text* -> <strong>text</strong>

    Args:
        text: User-entered text

    Returns:
        HTML-safe fragment
    """
    return BOLD_PATTERN.sub(r"<strong>\1</strong>", html.escape(text, quote=True))


def description_to_text(description: str) -> str:
    """
    Reduce a description that may hold HTML to plain text

    Bold tags become *text* so the emphasis survives; block-level closing
    tags and <br> become line breaks; every other tag is dropped.
    """
    text = BOLD_TAG_PATTERN.sub(lambda m: f"*{m.group(2)}*", description or "")
    text = BLOCK_TAG_PATTERN.sub("\n", text)
    text = TAG_PATTERN.sub("", text)
    return html.unescape(text)


def valid_image_url(image) -> Optional[str]:
    """Return the image URL if it is a usable http(s) URL, else None"""
    if isinstance(image, dict):
        image = image.get("url")
    if not isinstance(image, str):
        return None
    url = image.strip()
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return url


def _render_images(project: Project) -> str:
    urls = [url for url in (valid_image_url(image) for image in project.images) if url]
    if not urls:
        return ""

    items = []
    for index, url in enumerate(urls):
        css_class = "lw-image-item lw-cover" if index == 0 else "lw-image-item"
        alt = html.escape(f"{project.title or 'Product'} - Image {index + 1}", quote=True)
        items.append(
            f'<div class="{css_class}"><img src="{html.escape(url, quote=True)}" alt="{alt}" loading="lazy"></div>'
        )
    return f'<section class="lw-image-grid">{"".join(items)}</section>'


def _render_store(project: Project) -> str:
    store_name = project.store_name.strip()
    logo_url = valid_image_url(project.store_logo)
    if not store_name and not logo_url:
        return ""

    if logo_url:
        logo = f'<img src="{html.escape(logo_url, quote=True)}" alt="Store logo">'
    else:
        logo = html.escape(project.monogram())

    name = html.escape(store_name or "Store")
    return (
        '<div class="lw-store">'
        f'<div class="lw-logo">{logo}</div>'
        f'<div><strong>Sold by {name}</strong></div>'
        '</div>'
    )


def _render_description(project: Project) -> str:
    text = description_to_text(project.description)
    paragraphs = [line.strip() for line in text.splitlines() if line.strip()]
    if not paragraphs:
        return ""
    body = "".join(f"<p>{emphasize(paragraph)}</p>" for paragraph in paragraphs)
    return f'<div class="lw-card lw-description"><h2>About this item</h2>{body}</div>'


def _render_highlights(project: Project) -> str:
    if not project.highlights:
        return ""
    items = "".join(f"<li>{emphasize(highlight)}</li>" for highlight in project.highlights)
    return f'<div class="lw-card"><h2>What this item offers</h2><ul class="lw-highlights">{items}</ul></div>'


def _render_policies(project: Project) -> str:
    handling = shipping_text(project.shipping_policy)
    if handling == SHIPPING_TEXT[ShippingPolicy.SAME_DAY]:
        shipping_detail = "Orders are shipped on the same business day if placed by 2 PM."
    else:
        shipping_detail = f"Orders typically ship within {handling.lower()}."

    return (
        '<div class="lw-card lw-policy"><h2>Shipping &amp; Returns</h2>'
        f'<h3>Shipping: {html.escape(handling)}</h3>'
        f'<p>{html.escape(shipping_detail)}</p>'
        '<h3>Returns</h3>'
        f'<p>{html.escape(RETURN_POLICY_TEXT)}</p>'
        '</div>'
    )


def _render_structured_data(project: Project, image_urls: List[str]) -> str:
    """schema.org Product block; '<', '>' and '&' are unicode-escaped so it cannot close the script tag"""
    data = {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": project.title,
        "image": image_urls,
        "description": BOLD_PATTERN.sub(r"\1", description_to_text(project.description)).strip(),
        "brand": {"@type": "Brand", "name": project.store_name or "Store"},
    }
    payload = json.dumps(data, sort_keys=True, ensure_ascii=False)
    payload = payload.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
    return f'<script type="application/ld+json">{payload}</script>'


def render_listing_html(project: Project) -> str:
    """
    Render a project as a complete HTML document

    Deterministic: the same project always yields byte-identical output.

    Args:
        project: Project to render

    Returns:
        HTML document string
    """
    image_urls = [url for url in (valid_image_url(image) for image in project.images) if url]
    title = html.escape(project.title or "Untitled listing")

    sections = [
        f'<h1 class="lw-title">{title}</h1>',
        _render_images(project),
        _render_store(project),
        _render_description(project),
        _render_highlights(project),
        _render_policies(project),
    ]
    body = "\n".join(section for section in sections if section)

    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{title}</title>\n"
        f"<style>\n{STYLES}\n</style>\n"
        f"{_render_structured_data(project, image_urls)}\n"
        "</head>\n"
        "<body>\n"
        f'<div class="lw-container">\n{body}\n</div>\n'
        "</body>\n"
        "</html>\n"
    )


def export_filename(project: Project) -> str:
    """Download file name for the exported listing"""
    if not project.title.strip():
        return "listing.html"
    return f"{re.sub(r'[^a-zA-Z0-9]', '_', project.title.strip())}.html"


class PreviewRenderer:
    """Object wrapper so the renderer can be injected like the other services"""

    def render(self, project: Project) -> str:
        return render_listing_html(project)

    def export_filename(self, project: Project) -> str:
        return export_filename(project)
