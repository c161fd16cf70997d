"""
Thin client for the Backblaze B2 native API (v2).

One method per remote operation used by the uploader. Every transport or HTTP
failure is raised as NetworkError carrying the status code and the B2 error
body when the service returned one.
"""

import time
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Callable
from urllib.parse import quote

import requests

from b2backup.exceptions import NetworkError
from b2backup.models import PartTarget, RemoteBackupEntry
from b2backup.utils.retry import call_with_retries


logger = logging.getLogger(__name__)

DEFAULT_API_URL = 'https://api.backblazeb2.com'
AUTO_CONTENT_TYPE = 'b2/x-auto'
LIST_PAGE_SIZE = 1000

RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class AuthSession:
    """Authorization token and endpoints returned by b2_authorize_account."""
    authorization_token: str
    api_url: str
    download_url: str
    recommended_part_size: Optional[int] = None
    absolute_minimum_part_size: Optional[int] = None


def _raise_for_response(operation: str, response: requests.Response, retry_statuses=RETRYABLE_STATUSES):
    """Convert a non-2xx B2 response into NetworkError."""
    if response.ok:
        return

    body = None
    code = None
    message = response.reason or 'request failed'
    try:
        body = response.json()
    except ValueError:
        body = response.text or None
    if isinstance(body, dict):
        code = body.get('code')
        message = body.get('message') or message

    raise NetworkError(
        operation,
        message,
        status_code=response.status_code,
        code=code,
        body=body,
        retryable=response.status_code in retry_statuses
    )


def _send(session: requests.Session, operation: str, method: str, url: str,
          timeout: Optional[float], **kwargs) -> requests.Response:
    try:
        return session.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        raise NetworkError(operation, str(e), retryable=True)


def authorize_account(
    key_id: str,
    application_key: str,
    api_url: str = DEFAULT_API_URL,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None
) -> AuthSession:
    """
    Exchange an application key pair for an authorization token.

    Args:
        key_id: B2 application key ID
        application_key: B2 application key
        api_url: Authorization host
        session: Optional requests session to reuse
        timeout: Per-request timeout in seconds

    Returns:
        AuthSession with token, API URL and download URL

    Raises:
        NetworkError: If the authorization request fails
    """
    session = session or requests.Session()
    operation = 'b2_authorize_account'

    response = _send(
        session, operation, 'GET',
        f"{api_url}/b2api/v2/{operation}",
        timeout,
        auth=(key_id, application_key)
    )
    _raise_for_response(operation, response)
    data = _json(operation, response)

    return AuthSession(
        authorization_token=data['authorizationToken'],
        api_url=data['apiUrl'],
        download_url=data['downloadUrl'],
        recommended_part_size=data.get('recommendedPartSize'),
        absolute_minimum_part_size=data.get('absoluteMinimumPartSize')
    )


def _json(operation: str, response: requests.Response) -> Dict[str, Any]:
    try:
        return response.json()
    except ValueError:
        raise NetworkError(operation, 'response body is not valid JSON', status_code=response.status_code)


class B2Client:
    """
    Authenticated B2 API client bound to one AuthSession.

    JSON API calls are retried on retryable failures. Uploads to part or file
    upload URLs are single attempts: those URLs must be re-requested after a
    failure, so callers retry the whole (request URL, upload) pair.
    """

    def __init__(
        self,
        auth: AuthSession,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        max_attempts: int = 1,
        backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.auth = auth
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.sleep = sleep

    def _api(self, operation: str, method: str = 'POST', **kwargs) -> Dict[str, Any]:
        url = f"{self.auth.api_url}/b2api/v2/{operation}"
        headers = {'Authorization': self.auth.authorization_token}

        def attempt():
            response = _send(self.session, operation, method, url, self.timeout, headers=headers, **kwargs)
            _raise_for_response(operation, response)
            return _json(operation, response)

        return call_with_retries(
            attempt,
            attempts=self.max_attempts,
            backoff=self.backoff,
            sleep=self.sleep,
            description=operation
        )

    def list_file_names(self, bucket_id: str, max_file_count: int = LIST_PAGE_SIZE) -> List[RemoteBackupEntry]:
        """
        List one page of file names in a bucket.

        Only the first page is returned; nextFileName is not followed.
        """
        data = self._api(
            'b2_list_file_names',
            method='GET',
            params={'bucketId': bucket_id, 'maxFileCount': max_file_count}
        )
        if data.get('nextFileName'):
            logger.warning(
                f"Bucket listing truncated at {max_file_count} files; "
                f"older backups beyond the first page are not considered"
            )
        return [RemoteBackupEntry.from_json(f) for f in data.get('files', [])]

    def delete_file_version(self, file_id: str, file_name: str) -> Dict[str, Any]:
        return self._api('b2_delete_file_version', json={'fileId': file_id, 'fileName': file_name})

    def start_large_file(self, bucket_id: str, file_name: str, content_type: str = AUTO_CONTENT_TYPE) -> Dict[str, Any]:
        return self._api(
            'b2_start_large_file',
            json={'bucketId': bucket_id, 'fileName': file_name, 'contentType': content_type}
        )

    def get_upload_part_url(self, file_id: str) -> PartTarget:
        data = self._api('b2_get_upload_part_url', method='GET', params={'fileId': file_id})
        return PartTarget(upload_url=data['uploadUrl'], authorization_token=data['authorizationToken'])

    def finish_large_file(self, file_id: str, part_sha1_array: List[str]) -> Dict[str, Any]:
        return self._api(
            'b2_finish_large_file',
            json={'fileId': file_id, 'partSha1Array': part_sha1_array}
        )

    def cancel_large_file(self, file_id: str) -> Dict[str, Any]:
        return self._api('b2_cancel_large_file', json={'fileId': file_id})

    def get_upload_url(self, bucket_id: str) -> PartTarget:
        data = self._api('b2_get_upload_url', method='GET', params={'bucketId': bucket_id})
        return PartTarget(upload_url=data['uploadUrl'], authorization_token=data['authorizationToken'])

    def upload_part(self, target: PartTarget, part_number: int, data: bytes, sha1: str) -> Dict[str, Any]:
        """
        Upload the bytes of one part to a part upload URL.

        Raises:
            NetworkError: If the upload fails (401 and 503 mark the URL as spent)
        """
        operation = 'b2_upload_part'
        response = _send(
            self.session, operation, 'POST', target.upload_url, self.timeout,
            data=data,
            headers={
                'Authorization': target.authorization_token,
                'X-Bz-Part-Number': str(part_number),
                'Content-Length': str(len(data)),
                'X-Bz-Content-Sha1': sha1
            }
        )
        _raise_for_response(operation, response, RETRYABLE_STATUSES | {401})
        return _json(operation, response)

    def upload_file(self, target: PartTarget, file_name: str, data: bytes, sha1: str,
                    content_type: str = AUTO_CONTENT_TYPE) -> Dict[str, Any]:
        """Upload a whole file in a single request."""
        operation = 'b2_upload_file'
        response = _send(
            self.session, operation, 'POST', target.upload_url, self.timeout,
            data=data,
            headers={
                'Authorization': target.authorization_token,
                'X-Bz-File-Name': quote(file_name, safe='/'),
                'Content-Type': content_type,
                'Content-Length': str(len(data)),
                'X-Bz-Content-Sha1': sha1
            }
        )
        _raise_for_response(operation, response, RETRYABLE_STATUSES | {401})
        return _json(operation, response)

    def download_url_for(self, bucket_name: str, file_name: str) -> str:
        return f"{self.auth.download_url}/file/{bucket_name}/{file_name}"
