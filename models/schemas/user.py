from marshmallow import Schema, fields, pre_load, validate


def _norm_username(v):
    return v.strip().lower() if isinstance(v, str) else v


class UserLoginSchema(Schema):
    username = fields.String(required=True, validate=validate.Length(min=1, max=64))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "username" in data:
            data["username"] = _norm_username(data["username"])
        return data


class RefreshTokenSchema(Schema):
    refresh_token = fields.String(required=True, data_key="refreshToken", validate=validate.Length(min=1))


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    username = fields.String(allow_none=False)
    role = fields.String(allow_none=False)


class SessionOutSchema(Schema):
    id = fields.String()
    created_at = fields.DateTime(data_key="createdAt")
    ip_address = fields.String(allow_none=True, data_key="ipAddress")
    user_agent = fields.String(allow_none=True, data_key="userAgent")
