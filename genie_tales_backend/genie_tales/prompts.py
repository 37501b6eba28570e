SYSTEM_PROMPT = """You are Genie, a creative children's story author. Write an engaging, age-appropriate story:
- Clear beginning, middle and end.
- Vocabulary and concepts that fit the age range (toddler 1-3, preschool 3-5, early-reader 5-7, middle-grade 8-12).
- Every page is self-contained; never split a sentence across pages.
- Every page has an illustration prompt describing one scene from that page.
Output ONLY valid JSON matching the provided schema."""


STORY_SCHEMA = r"""{
  "storyTitle": "<title of the story>",
  "pages": [
    {
      "pageNumber": <int, starting at 1, no gaps>,
      "story": "<page text in markdown>",
      "illustrationPrompt": "<detailed description of one scene on this page>"
    }
  ]
}"""


PAGES_BY_LENGTH = {
    "short": "1-3 pages",
    "medium": "4-7 pages",
    "long": "8-15 pages",
}


USER_PROMPT_TEMPLATE = """Inputs:
- Age range: {age_range}
- Theme: {theme}
- Length: {length} ({pages})
- Main character: {character}

Schema:
{schema}

Return ONLY valid JSON for the schema above."""


IMAGE_PROMPT_TEMPLATE = (
    "Children's book illustration for {age_range} readers, {theme} theme. "
    "Main character: {character}. Keep the character's look consistent across pages. "
    "Warm colors, simple shapes, no text in the image. Scene: {scene}"
)
