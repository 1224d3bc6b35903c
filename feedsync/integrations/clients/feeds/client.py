import errno
import ftplib
import logging
import os
import socket
import tempfile
import typing
from urllib.parse import urlparse

import paramiko
import requests
from ratelimit import limits, sleep_and_retry

from common import utils as common_utils
from feedsync import enums as feedsync_enums
from feedsync import messages as feedsync_messages
from feedsync.integrations.clients.feeds import exceptions

logger = logging.getLogger(__name__)

_LOG_PREFIX = "[FEED-CLIENT]"

_DEFAULT_PORTS = {
    feedsync_enums.FeedProtocol.FTP: 21,
    feedsync_enums.FeedProtocol.FTPS: 21,
    feedsync_enums.FeedProtocol.SFTP: 22,
}


def split_host(raw_host: str) -> typing.Tuple[str, typing.Optional[feedsync_enums.FeedProtocol]]:
    """
    Strip any scheme prefix and trailing slashes from a configured host.

    Returns:
        Tuple of (bare host, protocol implied by the scheme or None)
    """
    raw_host = (raw_host or "").strip()
    parsed = urlparse(raw_host)
    if parsed.scheme and parsed.netloc:
        try:
            protocol = feedsync_enums.FeedProtocol(parsed.scheme.lower())
        except ValueError:
            protocol = None
        return parsed.hostname or parsed.netloc, protocol

    return raw_host.rstrip("/"), None


class FeedClient(object):
    def __init__(self, config: feedsync_messages.RemoteConfig, timeout: float = 60.0, downloads_dir: typing.Optional[str] = None):
        self.host, _ = split_host(config.host)
        self.port = config.port or _DEFAULT_PORTS.get(config.protocol)
        self.username = config.username
        self.password = config.password
        self.timeout = timeout
        self.downloads_dir = downloads_dir

        if not self.host:
            raise ValueError("Invalid remote config. Missing host.")

    def download(self, remote_path: str) -> bytes:
        """
        Download a remote document through a temporary local file.

        Args:
            remote_path: Path (or URL path) of the document on the remote host

        Returns:
            File contents as bytes
        """
        fd, temp_path = tempfile.mkstemp(prefix="feed_", suffix=".csv", dir=self.downloads_dir)
        os.close(fd)
        try:
            self._download_to(remote_path, temp_path)
            with open(temp_path, "rb") as file_obj:
                content = file_obj.read()
            logger.debug(f"{_LOG_PREFIX} Downloaded {remote_path} ({len(content)} bytes)")
            return content
        finally:
            try:
                os.remove(temp_path)
            except OSError:
                logger.warning(f"{_LOG_PREFIX} Could not remove temp file {temp_path}")

    def _download_to(self, remote_path: str, local_path: str) -> None:
        raise NotImplementedError


class SFTPFeedClient(FeedClient):
    def _download_to(self, remote_path: str, local_path: str) -> None:
        transport = None
        sftp = None
        try:
            transport = paramiko.Transport((self.host, self.port))
            transport.banner_timeout = self.timeout
            transport.connect(username=self.username, password=self.password)
            sftp = paramiko.SFTPClient.from_transport(transport)
            sftp.get_channel().settimeout(self.timeout)
            sftp.get(remote_path, local_path)
        except paramiko.AuthenticationException as e:
            raise exceptions.FeedAuthenticationError(
                f"SFTP authentication failed for {self.host}. Error: {common_utils.get_exception_message(e)}"
            )
        except FileNotFoundError:
            raise exceptions.FeedFileNotFoundError(f"File not found: {remote_path}")
        except IOError as e:
            if getattr(e, "errno", None) == errno.ENOENT:
                raise exceptions.FeedFileNotFoundError(f"File not found: {remote_path}")
            raise exceptions.FeedConnectionError(
                f"SFTP transfer failed for {remote_path}. Error: {common_utils.get_exception_message(e)}"
            )
        except (paramiko.SSHException, socket.error) as e:
            raise exceptions.FeedConnectionError(
                f"Failed to connect to SFTP server {self.host}:{self.port}. Error: {common_utils.get_exception_message(e)}"
            )
        finally:
            if sftp:
                sftp.close()
            if transport:
                transport.close()


class FTPFeedClient(FeedClient):
    def __init__(self, config: feedsync_messages.RemoteConfig, timeout: float = 60.0, downloads_dir: typing.Optional[str] = None):
        super().__init__(config, timeout=timeout, downloads_dir=downloads_dir)
        self.secure = config.protocol == feedsync_enums.FeedProtocol.FTPS

    def _download_to(self, remote_path: str, local_path: str) -> None:
        ftp = ftplib.FTP_TLS(timeout=self.timeout) if self.secure else ftplib.FTP(timeout=self.timeout)
        try:
            ftp.connect(self.host, self.port)
            ftp.login(user=self.username, passwd=self.password)
            if self.secure:
                ftp.prot_p()
            with open(local_path, "wb") as file_obj:
                ftp.retrbinary(f"RETR {remote_path}", file_obj.write)
        except ftplib.error_perm as e:
            message = common_utils.get_exception_message(e)
            if message.startswith("530"):
                raise exceptions.FeedAuthenticationError(f"FTP authentication failed for {self.host}. Error: {message}")
            if message.startswith("550"):
                raise exceptions.FeedFileNotFoundError(f"File not found: {remote_path}. Error: {message}")
            raise exceptions.FeedException(f"FTP command failed for {remote_path}. Error: {message}")
        except (ftplib.Error, OSError, EOFError) as e:
            raise exceptions.FeedConnectionError(
                f"FTP transfer failed for {self.host}:{self.port}. Error: {common_utils.get_exception_message(e)}"
            )
        finally:
            ftp.close()


class HTTPFeedClient(FeedClient):
    AUTH_STATUS_CODES = [401, 403]
    NOT_FOUND_STATUS_CODES = [404, 410]
    VALID_STATUS_CODES = [200]

    def __init__(self, config: feedsync_messages.RemoteConfig, timeout: float = 60.0, downloads_dir: typing.Optional[str] = None):
        super().__init__(config, timeout=timeout, downloads_dir=downloads_dir)
        self.scheme = config.protocol.value

    def _build_url(self, remote_path: str) -> str:
        netloc = f"{self.host}:{self.port}" if self.port else self.host
        return f"{self.scheme}://{netloc}/{remote_path.lstrip('/')}"

    @sleep_and_retry
    @limits(calls=30, period=60)
    def _download_to(self, remote_path: str, local_path: str) -> None:
        url = self._build_url(remote_path)
        auth = (self.username, self.password) if self.username else None
        try:
            with requests.request(
                method=feedsync_enums.HttpMethod.GET.value,
                url=url,
                auth=auth,
                timeout=self.timeout,
                stream=True,
            ) as response:
                if response.status_code in self.AUTH_STATUS_CODES:
                    raise exceptions.FeedAuthenticationError(
                        f"HTTP authentication failed (status_code={response.status_code}, url={url})"
                    )
                if response.status_code in self.NOT_FOUND_STATUS_CODES:
                    raise exceptions.FeedFileNotFoundError(f"File not found (status_code={response.status_code}, url={url})")
                if response.status_code not in self.VALID_STATUS_CODES:
                    raise exceptions.FeedConnectionError(
                        f"Invalid response (status_code={response.status_code}, url={url})"
                    )

                with open(local_path, "wb") as file_obj:
                    for chunk in response.iter_content(chunk_size=64 * 1024):
                        if chunk:
                            file_obj.write(chunk)
        except requests.exceptions.ConnectTimeout as e:
            raise exceptions.FeedConnectionError(f"Connect timeout. Error: {common_utils.get_exception_message(e)}")
        except requests.RequestException as e:
            raise exceptions.FeedConnectionError(f"Request exception. Error: {common_utils.get_exception_message(e)}")


_CLIENTS_BY_PROTOCOL = {
    feedsync_enums.FeedProtocol.FTP: FTPFeedClient,
    feedsync_enums.FeedProtocol.FTPS: FTPFeedClient,
    feedsync_enums.FeedProtocol.SFTP: SFTPFeedClient,
    feedsync_enums.FeedProtocol.HTTP: HTTPFeedClient,
    feedsync_enums.FeedProtocol.HTTPS: HTTPFeedClient,
}


def build_feed_client(
    config: feedsync_messages.RemoteConfig,
    timeout: float = 60.0,
    downloads_dir: typing.Optional[str] = None,
) -> FeedClient:
    client_class = _CLIENTS_BY_PROTOCOL[config.protocol]
    return client_class(config, timeout=timeout, downloads_dir=downloads_dir)
