import typing

from marshmallow import Schema, fields, pre_load, validate

from common import exceptions as common_exceptions
from common import utils as common_utils
from feedsync import enums as feedsync_enums
from feedsync import messages as feedsync_messages
from feedsync.integrations.clients.feeds import client as feeds_client

# Vendors configure credentials with a mix of naming conventions
_CREDENTIAL_ALIASES = {
    'ftp_server': 'host',
    'ftpServer': 'host',
    'server': 'host',
    'sftp_server': 'host',
    'ftp_username': 'username',
    'ftpUsername': 'username',
    'sftp_user': 'username',
    'user': 'username',
    'ftp_password': 'password',
    'ftpPassword': 'password',
    'sftp_password': 'password',
    'secret': 'password',
    'ftp_port': 'port',
    'ftpPort': 'port',
    'sftp_port': 'port',
    'catalogPath': 'catalog_path',
    'inventoryPath': 'inventory_path',
}


class RemoteCredentialsSchema(Schema):
    protocol = fields.String(
        required=False,
        validate=validate.OneOf([protocol.value for protocol in feedsync_enums.FeedProtocol]),
    )
    host = fields.String(required=True, validate=validate.Length(min=1))
    port = fields.Integer(required=False, allow_none=True, validate=validate.Range(min=1, max=65535))
    username = fields.String(required=True, validate=validate.Length(min=1))
    password = fields.String(required=True, validate=validate.Length(min=1))
    catalog_path = fields.String(required=False, allow_none=True)
    inventory_path = fields.String(required=False, allow_none=True)

    @pre_load
    def normalize_keys(self, data: typing.Dict, **kwargs: typing.Any) -> typing.Dict:
        if not isinstance(data, dict):
            return data

        normalized = {}
        for key, value in data.items():
            normalized.setdefault(_CREDENTIAL_ALIASES.get(key, key), value)
        if isinstance(normalized.get('protocol'), str):
            normalized['protocol'] = normalized['protocol'].lower()
        return normalized


def build_remote_config(
    credentials: typing.Dict, job_type: feedsync_enums.JobType
) -> feedsync_messages.RemoteConfig:
    data = common_utils.validate_data_schema(credentials, RemoteCredentialsSchema())

    remote_path = data.get('catalog_path') if job_type == feedsync_enums.JobType.CATALOG else data.get('inventory_path')
    if not remote_path:
        raise common_exceptions.ValidationSchemaException(
            'Missing remote path for {} feed.'.format(job_type.value)
        )

    host, scheme_protocol = feeds_client.split_host(data['host'])
    if data.get('protocol'):
        protocol = feedsync_enums.FeedProtocol(data['protocol'])
    else:
        protocol = scheme_protocol or feedsync_enums.FeedProtocol.FTP

    return feedsync_messages.RemoteConfig(
        protocol=protocol,
        host=host,
        port=data.get('port'),
        username=data['username'],
        password=data['password'],
        remote_path=remote_path,
    )
