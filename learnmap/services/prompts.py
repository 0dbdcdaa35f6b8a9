LEVEL_GUIDANCE = {
    "Beginner": "Simple explanations, foundational concepts, step-by-step guidance",
    "Intermediate": "Balanced depth, practical applications, building on fundamentals",
    "Advanced": "Deep technical details, complex concepts, expert-level content",
}

LEARNING_MAP_PROMPT = """Generate a structured, hierarchical learning map for the topic: {topic}.

Requirements:
- Include 3-5 main branches, each containing 3-4 subtopics
- Each subtopic should include:
  - A clear, concise title
  - A one-sentence overview/description
  - 2-3 suggested learning resources (each with type: "article", "video", or "book", plus title and URL)
- Adapt the complexity of explanations to the {level} learning level
{level_guidance}

Return ONLY a valid JSON object with this exact structure:
{{
  "branches": [
    {{
      "title": "Branch Title",
      "description": "Brief description of this branch",
      "subtopics": [
        {{
          "title": "Subtopic Title",
          "description": "One-sentence overview",
          "resources": [
            {{
              "type": "article|video|book",
              "title": "Resource Title",
              "url": "https://example.com/resource"
            }}
          ]
        }}
      ]
    }}
  ]
}}

Do not include any markdown formatting, code blocks, or additional text. Only return the JSON object."""


def build_learning_map_prompt(topic: str, level: str) -> str:
    """Deterministic prompt for a topic/level pair."""
    level_guidance = "\n".join(f"  - {name}: {text}" for name, text in LEVEL_GUIDANCE.items())
    return LEARNING_MAP_PROMPT.format(topic=topic, level=level, level_guidance=level_guidance)
