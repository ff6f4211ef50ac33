import hashlib
import textwrap

import streamlit as st
import streamlit.components.v1 as components

from config.app_metadata import KEY_CHALLENGES, MERMAID_DIAGRAMS, PROJECT_SUMMARY, VIEW_GUIDE
from config.settings import get_settings


def _render_mermaid(diagram: str, height: int = 260) -> None:
    diagram = textwrap.dedent(diagram).strip()
    node_id = f"mmd-{hashlib.md5(diagram.encode('utf-8')).hexdigest()}"
    html = f"""
    <div id="{node_id}" class="mermaid">
    {diagram}
    </div>
    <script src="https://cdn.jsdelivr.net/npm/mermaid@10/dist/mermaid.min.js"></script>
    <script>
      mermaid.initialize({{ startOnLoad: false }});
      const el = document.getElementById("{node_id}");
      if (el) {{
        mermaid.run({{ nodes: [el] }});
      }}
    </script>
    """
    components.html(html, height=height, scrolling=True)


def render_about() -> None:
    settings = get_settings()
    st.subheader("What this app is")
    st.write(PROJECT_SUMMARY)

    st.subheader("Views")
    for line in VIEW_GUIDE:
        st.markdown(f"- {line}")

    st.subheader("Thresholds")
    st.markdown(
        f"- **Low rating**: average below {settings.low_rating_threshold}.\n"
        f"- **Declining sales**: second half of the range more than "
        f"{settings.decline_attention_pct:.0f}% below the first half.\n"
        f"- **High waste**: more than {settings.waste_rate_threshold * 100:.0f}% of units received "
        "were wasted.\n"
        f"- **Weekly waste check**: more than ${settings.weekly_waste_cost_threshold:,.0f} of waste "
        "in a location's latest week."
    )

    st.subheader("Key technical challenges")
    for challenge in KEY_CHALLENGES:
        st.markdown(f"- {challenge}")

    st.subheader("Architecture diagrams")
    for title, diagram in MERMAID_DIAGRAMS.items():
        st.markdown(f"**{title}**")
        try:
            _render_mermaid(diagram)
        except Exception:
            st.code(diagram, language="mermaid")

    st.subheader("Integrations")
    st.markdown(
        f"- **LLM provider**: `{settings.llm_provider}` with model `{settings.llm_model}`.\n"
        "- **Snowflake** holds every table; the app only issues read queries.\n"
        "- **Data safety note**: assistant SQL is limited to a single SELECT with a row cap."
    )
