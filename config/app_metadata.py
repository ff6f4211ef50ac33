APP_TITLE = "Snowcone Warehouse"

PROJECT_SUMMARY = (
    "Snowcone Warehouse is an operations dashboard for a chain of snow cone shops across "
    "Texas. It reads locations, daily sales, customer reviews and weekly inventory from "
    "Snowflake, scores every location, flags the ones that need attention, and lets "
    "managers ask questions about the data in plain English."
)

VIEW_GUIDE = [
    "Overview: company KPIs against the previous period, revenue trend, order mix and waste.",
    "Scorecard: every active location ranked by revenue, rating, trend or attention flags.",
    "Sales: revenue by order type over time with optional smoothing and location filter.",
    "Waste: waste rate against the threshold, the weekly cost check and a category breakdown.",
    "Location detail: one store's profile, trend vs the company average, inventory and reviews.",
    "Compare: two or three locations side by side.",
    "Assistant: natural-language questions answered with read-only SQL.",
    "Briefing: a short Monday morning summary written by the LLM.",
]

KEY_CHALLENGES = [
    "Warehouse dates arrive as DATE values, ISO strings or epoch-day integers depending on the "
    "driver path, so every frame is normalized to ISO dates before aggregation.",
    "Trend labels compare the first half of a location's rows with the second half, which keeps "
    "the signal stable for short date ranges but needs a guard when the first half is empty.",
    "The assistant only runs single SELECT statements with a row cap, since model output is "
    "untrusted and goes straight to the warehouse.",
    "ASK_LLM returns a VARIANT whose text may sit under response, message or content depending "
    "on the model, so the client normalizes the shape and keeps the credit accounting.",
    "Plotly click selections survive Streamlit reruns, so drill-downs remember the last handled "
    "click to avoid reopening the same location.",
]

MERMAID_DIAGRAMS = {
    "Architecture": """
flowchart LR
  Snowflake[(SNOWCONE_DB)] --> Queries
  Queries --> Metrics
  Metrics --> Views
  Queries --> Views
  Views --> StreamlitUI
""",
    "Assistant": """
flowchart LR
  Question --> Prompt
  Prompt --> ASK_LLM
  ASK_LLM --> SQLGuard
  SQLGuard --> Snowflake[(SNOWCONE_DB)]
  Snowflake --> ResultTable
""",
    "Scoring": """
flowchart LR
  Sales --> HalfSplitTrend
  Reviews --> AvgRating
  Inventory --> WasteRate
  HalfSplitTrend --> AttentionFlags
  AvgRating --> AttentionFlags
  WasteRate --> AttentionFlags
""",
}
