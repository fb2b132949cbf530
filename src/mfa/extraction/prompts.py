"""Prompt templates for the inference operations.

Each template asks for a single JSON object whose shape matches the
corresponding model in ``mfa.extraction.parsing``.
"""

RELEVANCE_PROMPT = """\
Your task is to determine if the provided research content is relevant to the \
user's query.

QUERY: {query}

CONTENT:
{content}

Judge topical alignment: does the content discuss the same subject matter as \
the query? Content is relevant if it, or some part of it, is relevant.

Output JSON: {{"isRelevant": true|false, "confidence": 0.0-1.0, "explanation": "..."}}
"""

EXTRACT_PROMPT = """\
You are a research assistant analyzing scientific papers about material flow \
analysis and circular economy. Extract precise boundary information from the \
content below, focusing on aspects relevant to: {query}

CONTENT:
{content}

Extract:
1. source: the complete citation or reference information
2. spatialScope: the specific geographic area or system boundary of the study, \
as detailed as possible
3. timeRange: the period the study analyzes, with start and end years
4. policyRecommendations: every policy recommendation as a separate, complete \
sentence that keeps its rationale and the original wording

Provide only information directly stated in the text.

Output JSON: {{"source": "...", "spatialScope": "...", "timeRange": "...", \
"policyRecommendations": ["...", "..."]}}
If the content holds no boundary information at all, output: null
"""

FEEDBACK_SUFFIX = """
IMPORTANT FEEDBACK - address these issues with your previous extraction:
{suggestions}

Review the content again and extract more comprehensive and contextual policy \
recommendations.
"""

EVALUATE_PROMPT = """\
Evaluate the completeness and quality of the policy recommendations extracted \
from a scientific paper.

ORIGINAL CONTENT:
{content}

EXTRACTED POLICY RECOMMENDATIONS:
{recommendations}

Criteria:
1. Comprehensiveness - are all policy suggestions in the text covered?
2. Contextual detail - is the supporting context and rationale included?
3. Accuracy - do they reflect the authors' intentions without distortion?

Output JSON: {{"isComplete": true|false, "score": 0.0-1.0, \
"missingAspects": ["..."], "improvementSuggestions": ["..."]}}
"""

MERGE_PROMPT = """\
These boundary items were extracted from the same source and must be merged.
SOURCE: "{source}"

ITEMS:
{items}

Rules:
1. Keep the same source
2. Combine spatial scope information, dropping duplicate or near-identical points
3. Combine time ranges, taking the most comprehensive range
4. Merge policy recommendations, dropping duplicate or near-identical points

Output JSON: {{"source": "...", "spatialScope": "...", "timeRange": "...", \
"policyRecommendations": ["...", "..."]}}
"""

TAG_PROMPT = """\
Classify the spatial scope into one of these categories:
- "city": city level (e.g. Beijing, Shanghai)
- "province": province, state or region level (e.g. Guangdong, Hebei)
- "national": country level or above (e.g. China, global)
- "focus": below city level (a district, site or building)

SPATIAL SCOPE: "{spatial_scope}"

If the scope is unclear, ambiguous or not specified, use null.

Output JSON: {{"spatialTag": "city"|"province"|"national"|"focus"|null}}
"""


def build_extract_prompt(query: str, content: str, feedback: list[str]) -> str:
    prompt = EXTRACT_PROMPT.format(query=query, content=content)
    if feedback:
        numbered = "\n".join(f"{i}. {s}" for i, s in enumerate(feedback, 1))
        prompt += FEEDBACK_SUFFIX.format(suggestions=numbered)
    return prompt
