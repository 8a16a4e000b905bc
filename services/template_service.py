"""
Template Service
Personalizes campaign message templates with contact fields
"""

import re
from typing import Any, Dict, List, Mapping, Union

# {{name}}, {{ company }}, ...
PLACEHOLDER_PATTERN = re.compile(r'\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}')

# Contact attributes always available to templates
STANDARD_FIELDS = ('name', 'company', 'email', 'phone')


class TemplateValidationError(Exception):
    """Raised when a template cannot be used for a campaign"""
    pass


def extract_variables(template: str) -> List[str]:
    """
    Extract placeholder names from a template.

    Returns:
        Unique variable names in order of first appearance
    """
    seen = set()
    result = []
    for var in PLACEHOLDER_PATTERN.findall(template or ''):
        if var not in seen:
            seen.add(var)
            result.append(var)
    return result


def contact_variables(contact: Any) -> Dict[str, Any]:
    """
    Build the variable mapping for a contact.

    Metadata keys are available to templates but never shadow the standard fields.
    """
    if isinstance(contact, Mapping):
        return dict(contact)

    data = dict(getattr(contact, 'contact_metadata', None) or {})
    data.update({
        'name': getattr(contact, 'name', None),
        'company': getattr(contact, 'company', None),
        'email': getattr(contact, 'email', None),
        'phone': getattr(contact, 'phone_number', None),
    })
    return data


def render(template: str, contact: Union[Mapping[str, Any], Any]) -> str:
    """
    Substitute {{placeholders}} in a template.

    Missing, None and unknown fields render as an empty string. Rendering is
    pure: the same template and contact always give the same text.

    Args:
        template: Message template
        contact: A Contact model or a plain mapping of variable values
    """
    data = contact_variables(contact)

    def replace_variable(match):
        value = data.get(match.group(1))
        return '' if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(replace_variable, template or '')


def validate_template(template: str) -> List[str]:
    """
    Check a campaign template before it is saved.

    Returns:
        Variables that are neither standard fields nor known to be metadata keys,
        so callers can warn about them

    Raises:
        TemplateValidationError: If the template is empty
    """
    if not template or not template.strip():
        raise TemplateValidationError("Message template cannot be empty")
    return [v for v in extract_variables(template) if v not in STANDARD_FIELDS]
