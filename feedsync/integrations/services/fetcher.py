import logging
import time
import typing

from common import utils as common_utils
from feedsync import messages as feedsync_messages
from feedsync.integrations.clients.feeds import client as feeds_client
from feedsync.integrations.clients.feeds import exceptions as feeds_exceptions

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[FEED-FETCHER]'


class FeedFetcher(object):
    """
    Retrieves a raw feed document, retrying with exponential backoff.

    Authentication failures are retried like transient failures because the
    transports cannot always tell them apart; missing files fail at once.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        timeout: float = 60.0,
        downloads_dir: typing.Optional[str] = None,
        client_factory: typing.Optional[typing.Callable[..., feeds_client.FeedClient]] = None,
        sleep: typing.Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max(1, max_attempts)
        self.backoff_base_seconds = backoff_base_seconds
        self.timeout = timeout
        self.downloads_dir = downloads_dir
        self.client_factory = client_factory or feeds_client.build_feed_client
        self.sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base_seconds * (2 ** attempt)

    def fetch(self, remote_config: feedsync_messages.RemoteConfig) -> str:
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            logger.info('{} Download attempt {}/{} for {}.'.format(
                _LOG_PREFIX, attempt, self.max_attempts, remote_config.remote_path
            ))
            try:
                client = self.client_factory(
                    remote_config, timeout=self.timeout, downloads_dir=self.downloads_dir
                )
                content = client.download(remote_config.remote_path)
                document = content.decode('utf-8-sig', errors='replace')
                logger.info('{} Loaded {} characters from {}.'.format(
                    _LOG_PREFIX, len(document), remote_config.remote_path
                ))
                return document
            except feeds_exceptions.FeedFileNotFoundError as e:
                logger.error('{} File not found, check path {}. Error: {}'.format(
                    _LOG_PREFIX, remote_config.remote_path, common_utils.get_exception_message(e)
                ))
                raise feeds_exceptions.FeedFetchError(
                    'Feed download failed: {}'.format(common_utils.get_exception_message(e)),
                    attempts=attempt,
                    last_error=e,
                )
            except feeds_exceptions.FeedAuthenticationError as e:
                last_error = e
                logger.error('{} [AUTH] Authentication error on attempt {}, check credentials. Error: {}'.format(
                    _LOG_PREFIX, attempt, common_utils.get_exception_message(e)
                ))
            except (feeds_exceptions.FeedException, ValueError) as e:
                last_error = e
                logger.error('{} Attempt {} failed. Error: {}'.format(
                    _LOG_PREFIX, attempt, common_utils.get_exception_message(e)
                ))

            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.info('{} Retrying in {:.1f}s.'.format(_LOG_PREFIX, delay))
                self.sleep(delay)

        raise feeds_exceptions.FeedFetchError(
            'Feed download failed after {} attempts: {}'.format(
                self.max_attempts, common_utils.get_exception_message(last_error) if last_error else 'unknown error'
            ),
            attempts=self.max_attempts,
            last_error=last_error,
        )
