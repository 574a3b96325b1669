"""JavaScript snippets evaluated inside rendered pages.

Extraction scripts walk open shadow roots and same-origin iframes so that
content injected into isolated sub-documents is collected like any other.
"""

# Liveness check: must evaluate to 2 on a healthy page.
LIVENESS_SCRIPT = "() => 1 + 1"

_OBSERVER_FN = """() => {
  if (window.__siteauditMetrics) return true;
  const m = window.__siteauditMetrics = {lcp: null, cls: 0, fid: null, tbt: 0, fcp: null};
  const observe = (type, onEntry) => {
    try {
      new PerformanceObserver((list) => list.getEntries().forEach(onEntry))
        .observe({type, buffered: true});
    } catch (e) {}
  };
  observe('largest-contentful-paint', (e) => { m.lcp = e.renderTime || e.loadTime || e.startTime; });
  observe('layout-shift', (e) => { if (!e.hadRecentInput) m.cls += e.value; });
  observe('first-input', (e) => { if (m.fid === null) m.fid = e.processingStart - e.startTime; });
  observe('longtask', (e) => { m.tbt += Math.max(0, e.duration - 50); });
  observe('paint', (e) => { if (e.name === 'first-contentful-paint') m.fcp = e.startTime; });
  return true;
}"""

# Registered with add_init_script so observers exist before the first paint.
PERF_OBSERVER_INIT_SCRIPT = f"({_OBSERVER_FN})();"

# Same installer as an evaluate() function; a no-op when already installed.
PERF_OBSERVER_SCRIPT = _OBSERVER_FN

READ_METRICS_SCRIPT = """async (maxWaitMs) => {
  const m = window.__siteauditMetrics || {};
  const deadline = Date.now() + (maxWaitMs || 0);
  while (m.lcp == null && Date.now() < deadline) {
    await new Promise((resolve) => setTimeout(resolve, 100));
  }
  const nav = performance.getEntriesByType('navigation')[0];
  const ttfb = nav ? Math.max(0, nav.responseStart - nav.requestStart) : null;
  let fcp = m.fcp;
  if (fcp == null) {
    const paint = performance.getEntriesByName('first-contentful-paint')[0];
    if (paint) fcp = paint.startTime;
  }
  return {
    lcp: m.lcp == null ? null : m.lcp,
    cls: m.cls == null ? null : m.cls,
    fid: m.fid == null ? null : m.fid,
    tbt: m.tbt == null ? null : m.tbt,
    fcp: fcp == null ? null : fcp,
    ttfb: ttfb,
  };
}"""

# ---------------------------------------------------------------------------
# Content expansion
# ---------------------------------------------------------------------------

SCROLL_SCRIPT = """() => {
  const height = document.body ? document.body.scrollHeight : 0;
  window.scrollTo(0, height);
  return height;
}"""

# Clicks never follow real links: only buttons and in-page anchors qualify.
_IS_SAFE_TARGET = """const isSafeTarget = (el) => {
    if (el.tagName !== 'A') return true;
    const href = (el.getAttribute('href') || '').trim();
    return !href || href.startsWith('#') || href.startsWith('javascript:');
  };"""

CLICK_LOAD_MORE_SCRIPT = """() => {
  __IS_SAFE_TARGET__
  const pattern = /\\b(load|show|see|view)\\s+more\\b|\\bexpand\\b/i;
  let clicked = 0;
  document.querySelectorAll('button, a, [role="button"]').forEach((el) => {
    if (clicked >= 10 || el.dataset.siteauditClicked) return;
    const text = (el.innerText || el.textContent || '').trim();
    if (!text || text.length > 40 || !pattern.test(text) || !isSafeTarget(el)) return;
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') return;
    el.dataset.siteauditClicked = '1';
    try { el.click(); clicked += 1; } catch (e) {}
  });
  return clicked;
}""".replace("__IS_SAFE_TARGET__", _IS_SAFE_TARGET)

REVEAL_TABS_SCRIPT = """(limit) => {
  __IS_SAFE_TARGET__
  let clicked = 0;
  const tabs = document.querySelectorAll(
    '[role="tab"][aria-selected="false"], .tab:not(.active), [data-tab]:not(.active)'
  );
  for (const tab of tabs) {
    if (clicked >= limit) break;
    if (!isSafeTarget(tab)) continue;
    try { tab.click(); clicked += 1; } catch (e) {}
  }
  document.querySelectorAll('[role="tabpanel"][hidden]').forEach((panel) => panel.removeAttribute('hidden'));
  return clicked;
}""".replace("__IS_SAFE_TARGET__", _IS_SAFE_TARGET)

EXPAND_ACCORDIONS_SCRIPT = """(limit) => {
  __IS_SAFE_TARGET__
  let clicked = 0;
  const items = document.querySelectorAll(
    '[aria-expanded="false"], .accordion:not(.active), [data-accordion]:not(.active)'
  );
  for (const el of items) {
    if (clicked >= limit) break;
    if (!isSafeTarget(el)) continue;
    try { el.click(); clicked += 1; } catch (e) {}
  }
  document.querySelectorAll('details:not([open])').forEach((d) => d.setAttribute('open', ''));
  return clicked;
}""".replace("__IS_SAFE_TARGET__", _IS_SAFE_TARGET)

# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

_COLLECT_ROOTS = """const collectRoots = () => {
    const roots = [];
    const visit = (root) => {
      if (!root || roots.includes(root)) return;
      roots.push(root);
      root.querySelectorAll('*').forEach((el) => { if (el.shadowRoot) visit(el.shadowRoot); });
      root.querySelectorAll('iframe, frame').forEach((frame) => {
        try { if (frame.contentDocument) visit(frame.contentDocument); } catch (e) {}
      });
    };
    visit(document);
    return roots;
  };"""

EXTRACT_IMAGES_SCRIPT = """() => {
  __COLLECT_ROOTS__
  const images = new Map();
  const add = (src, alt, kind, base) => {
    if (!src || src.startsWith('data:')) return;
    let abs;
    try { abs = new URL(src, base || document.baseURI).href; } catch (e) { return; }
    if (!images.has(abs)) images.set(abs, {src: abs, alt: alt == null ? null : String(alt), kind});
  };
  for (const root of collectRoots()) {
    root.querySelectorAll('img').forEach((img) => add(
      img.currentSrc || img.getAttribute('src') || img.getAttribute('data-src'),
      img.getAttribute('alt'),
      'img',
      img.ownerDocument.baseURI,
    ));
    root.querySelectorAll('picture source[srcset]').forEach((source) => add(
      source.getAttribute('srcset').split(',')[0].trim().split(/\\s+/)[0], '', 'source',
      source.ownerDocument.baseURI,
    ));
    root.querySelectorAll('[style*="background"]').forEach((el) => {
      const match = /url\\(["']?([^"')]+)["']?\\)/.exec(el.getAttribute('style') || '');
      if (match) add(match[1], null, 'background', el.ownerDocument.baseURI);
    });
  }
  return Array.from(images.values());
}""".replace("__COLLECT_ROOTS__", _COLLECT_ROOTS)

EXTRACT_LINKS_SCRIPT = """() => {
  __COLLECT_ROOTS__
  const links = new Map();
  const add = (href, text, base) => {
    href = (href || '').trim();
    if (!href || /^(#|javascript:|mailto:|tel:|data:)/i.test(href)) return;
    let abs;
    try { abs = new URL(href, base || document.baseURI).href; } catch (e) { return; }
    if (!links.has(abs)) links.set(abs, {href: abs, text: (text || '').trim().slice(0, 120)});
  };
  for (const root of collectRoots()) {
    root.querySelectorAll('a[href]').forEach((a) => add(a.getAttribute('href'), a.textContent, a.ownerDocument.baseURI));
    root.querySelectorAll('[onclick]').forEach((el) => {
      const match = /location(?:\\.href)?\\s*=\\s*['"]([^'"]+)['"]/.exec(el.getAttribute('onclick') || '');
      if (match) add(match[1], el.textContent, el.ownerDocument.baseURI);
    });
  }
  return Array.from(links.values());
}""".replace("__COLLECT_ROOTS__", _COLLECT_ROOTS)

EXTRACT_HEADINGS_SCRIPT = """() => {
  __COLLECT_ROOTS__
  const result = {h1: [], h2: [], total: 0};
  for (const root of collectRoots()) {
    root.querySelectorAll('h1, h2, h3, h4, h5, h6').forEach((h) => {
      result.total += 1;
      const text = (h.textContent || '').replace(/\\s+/g, ' ').trim();
      if (h.tagName === 'H1') result.h1.push(text);
      else if (h.tagName === 'H2') result.h2.push(text);
    });
  }
  return result;
}""".replace("__COLLECT_ROOTS__", _COLLECT_ROOTS)

EXTRACT_STRUCTURED_DATA_SCRIPT = """() => {
  __COLLECT_ROOTS__
  const blocks = [];
  const microdata = [];
  for (const root of collectRoots()) {
    root.querySelectorAll('script[type="application/ld+json"]').forEach((s) => blocks.push(s.textContent || ''));
    root.querySelectorAll('[itemtype]').forEach((el) => microdata.push(el.getAttribute('itemtype') || ''));
  }
  return {blocks, microdata};
}""".replace("__COLLECT_ROOTS__", _COLLECT_ROOTS)
