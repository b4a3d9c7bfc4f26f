from marshmallow import Schema, fields


class AuditLogOutSchema(Schema):
    id = fields.String()
    username = fields.String()
    action = fields.String()
    resource_type = fields.String(allow_none=True)
    resource_id = fields.String(allow_none=True)
    details = fields.String(allow_none=True)
    ip_address = fields.String(allow_none=True)
    user_agent = fields.String(allow_none=True)
    status = fields.String()
    error_message = fields.String(allow_none=True)
    timestamp = fields.DateTime()
