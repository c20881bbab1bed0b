"""
Generate system prompts for LLM query correction.
"""

import json
from datetime import datetime
from typing import Any, Dict, List

from query_guard.core.models import CorrectionRequest, TableMeta


class CorrectionPromptGenerator:
    """
    Generates system prompts for the query correction agent.

    The prompt lists the collection schema and the rules a proposal must
    follow to be accepted: same structure, only field names may change.
    """

    def generate_system_prompt(self) -> str:
        """
        Generate the system prompt for correction.

        Returns:
            System prompt string with instructions and examples
        """
        return f"""
Today is {datetime.now().strftime("%Y-%m-%d")}

### 1. Your Goal
You repair MongoDB-style queries written by another assistant. You receive the
collection schema, the original query and, when some fields do not exist, the
invalid field names with ranked suggestions. You return the corrected query as
a single JSON object matching the output schema. No prose.

### 2. Input
The user message is a JSON object with these keys:
- `collection`: collection name
- `operation`: one of find, count, aggregate, distinct, min, max, sum, avg
- `trigger`: `invalid_fields` (some fields do not exist) or `empty_result`
  (the query was valid but returned nothing useful)
- `schema_fields`: field name -> type (string, number, boolean, date, object, array, objectId)
- `field_descriptions`: optional field name -> description
- `original_query`: `predicate`, `pipeline`, `key`, `projection`, `sort`
- `invalid_fields` and `suggestions`: present for `invalid_fields`

### 3. Critical Rules
- **Only use field names from `schema_fields`.** Never invent fields.
- **Keep every valid field.** A field that exists in the schema and appears in
  the original query must appear in your answer with the same name.
- **Do not add or remove constraints.** Same number of fields, same `$and`/`$or`
  nesting, same pipeline stages in the same order.
- **Rename invalid fields only.** Prefer the top suggestion unless the
  descriptions clearly point to another one.
- For `empty_result`, field names stay the same; you may only fix values
  (casing, spelling, date granularity such as "2025-06" instead of "2025-06-31").
- For distinct/min/max/sum/avg, return the corrected `key`.
- Return only the parts present in `original_query`.

### 4. Examples

#### Example 1: Invalid field
Input:
```json
{{
  "operation": "find",
  "trigger": "invalid_fields",
  "schema_fields": {{"status": "string", "createdAt": "date"}},
  "original_query": {{"predicate": {{"status": "paid", "crt_at": "2025-06"}}}},
  "invalid_fields": ["crt_at"]
}}
```
Output:
```json
{{"predicate": {{"status": "paid", "createdAt": "2025-06"}}}}
```

#### Example 2: Invalid key
Input:
```json
{{
  "operation": "sum",
  "trigger": "invalid_fields",
  "schema_fields": {{"amount": "number", "status": "string"}},
  "original_query": {{"predicate": {{"status": "paid"}}, "key": "amout"}},
  "invalid_fields": ["amout"]
}}
```
Output:
```json
{{"predicate": {{"status": "paid"}}, "key": "amount"}}
```
"""

    @staticmethod
    def generate_user_prompt(request: CorrectionRequest) -> str:
        """Serialize a correction request as the user message."""
        return json.dumps(request.model_dump(mode="json", exclude_none=True), indent=2)


class SchemaDescriptionPromptGenerator:
    """
    Generates prompts asking the LLM to describe a sampled collection.

    The answer is parsed as schema overrides (display names, descriptions
    and keywords).
    """

    def __init__(self, table: TableMeta, samples: List[Dict[str, Any]] = None):
        self.table = table
        self.samples = samples or []

    def generate_system_prompt(self) -> str:
        return """
You document MongoDB collections for a query assistant.
Given a collection name, its fields with types and optional sample documents,
return a JSON object with:
- `display_name`: short human-readable collection name
- `keywords`: 3 to 10 lowercase search keywords
- `fields`: list of {"name", "display_name", "description"} for the given fields only

Use only the field names provided. Keep descriptions to one sentence.
"""

    def generate_user_prompt(self) -> str:
        payload = {
            "collection": self.table.collection_name,
            "fields": {f.name: f.type.value for f in self.table.fields},
            "samples": self.samples[:3],
        }
        return json.dumps(payload, indent=2, default=str)
