from marshmallow import Schema, fields, pre_load, validate, validates, ValidationError

ROLE_CHOICES = ("ADMIN", "OPERATOR", "VIEWER")


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _check_password(value):
    if len(value) < 8:
        raise ValidationError("Password must be at least 8 characters long.")


class UserCreateSchema(Schema):
    username = fields.String(required=True, validate=validate.Length(min=3, max=50))
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    f_name = fields.String(allow_none=True)
    l_name = fields.String(allow_none=True)
    phone_number = fields.String(allow_none=True, validate=validate.Length(max=32))
    roles = fields.List(
        fields.String(validate=validate.OneOf(ROLE_CHOICES)),
        required=True,
        validate=validate.Length(min=1, error="At least one role is required"),
    )
    enabled = fields.Boolean(load_default=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            if "email" in data:
                data["email"] = _norm_email(data["email"])
            if isinstance(data.get("username"), str):
                data["username"] = data["username"].strip()
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class UserUpdateSchema(Schema):
    email = fields.Email(allow_none=True)
    password = fields.String(allow_none=True, load_only=True)
    f_name = fields.String(allow_none=True)
    l_name = fields.String(allow_none=True)
    phone_number = fields.String(allow_none=True, validate=validate.Length(max=32))
    roles = fields.List(fields.String(validate=validate.OneOf(ROLE_CHOICES)), validate=validate.Length(min=1))
    enabled = fields.Boolean()

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = _norm_email(data["email"])
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        if value is not None:
            _check_password(value)


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    username = fields.String()
    email = fields.String(allow_none=True)
    f_name = fields.String(allow_none=True)
    l_name = fields.String(allow_none=True)
    phone_number = fields.String(allow_none=True)
    roles = fields.List(fields.String())
    enabled = fields.Boolean()
    locked = fields.Method("get_locked")
    failed_login_attempts = fields.Integer()
    last_login_at = fields.DateTime(allow_none=True)
    created_at = fields.DateTime(allow_none=True)
    updated_at = fields.DateTime(allow_none=True)

    def get_locked(self, obj):
        return obj.locked_until is not None
