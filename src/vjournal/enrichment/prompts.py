"""Prompt templates for Claude API enrichment."""

TOPIC_EXTRACTION_SYSTEM = (
    "Extract 3-5 key topics or themes from the journal entry. "
    "Return only the topics as a comma-separated list, lowercase, no explanations."
)

TOPIC_EXTRACTION_PROMPT = """Extract topics from:

{text}"""

CLUSTER_LABEL_SYSTEM = (
    "Generate a short, descriptive label (2-4 words) for a cluster of journal entries. "
    "The label should capture the main theme. Examples: \"Career & Growth\", "
    "\"Relationships\", \"Personal Health\", \"Creative Projects\". "
    "Respond with the label only."
)

CLUSTER_LABEL_PROMPT = """Generate a label for these related journal entries:

{samples}"""
