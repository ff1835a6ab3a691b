# reviewdesk/blueprints/deliverables/forms.py
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import StringField, TextAreaField, IntegerField, SelectField, DateField
from wtforms.validators import DataRequired, Length, Optional as Opt

from ...models.deliverable import TYPES
from ...workflow.errors import ValidationError

TYPE_CHOICES = [(t, t.title()) for t in TYPES]


class DeliverableForm(FlaskForm):
    class Meta:
        csrf = False

    project_id = IntegerField("Project", validators=[DataRequired()])
    title = StringField("Title", validators=[DataRequired(), Length(max=200)])
    description = TextAreaField("Description", validators=[Opt()])
    type = SelectField("Type", choices=TYPE_CHOICES, default="other", validators=[Opt()])
    due_date = DateField("Due date", validators=[Opt()])


class DeliverableUpdateForm(FlaskForm):
    """Partial edit; absent fields are left alone."""
    class Meta:
        csrf = False

    title = StringField("Title", validators=[Opt(), Length(max=200)])
    description = TextAreaField("Description", validators=[Opt()])
    type = SelectField("Type", choices=TYPE_CHOICES, validators=[Opt()], validate_choice=False)
    due_date = DateField("Due date", validators=[Opt()])

    def validate_type(self, field):
        if field.data and field.data not in TYPES:
            raise ValueError("Not a valid deliverable type.")


def file_payloads(data, key) -> list[dict]:
    """File references from a JSON body. Each needs at least a url."""
    raw = (data or {}).get(key)
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise ValidationError(key, f"'{key}' must be a list of file objects.")
    files = []
    for item in raw:
        if isinstance(item, str):
            item = {"url": item}
        if not isinstance(item, dict) or not (item.get("url") or "").strip():
            raise ValidationError(key, "Every file needs a url.")
        files.append(item)
    return files


def form_data(payload: dict) -> MultiDict:
    """Form input from a JSON object; nulls count as absent."""
    return MultiDict({k: v for k, v in payload.items() if v is not None and not isinstance(v, (list, dict))})
