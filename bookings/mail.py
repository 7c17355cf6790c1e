"""
Email backend for the hosted mail connector.

Messages are posted as JSON ``{to, cc, subject, text, html, attachments}``
to ``MAILER_API_URL``; attachments are base64 encoded.
"""
import base64
import logging

import requests
from django.conf import settings
from django.core.mail.backends.base import BaseEmailBackend

logger = logging.getLogger(__name__)


class ConnectorEmailBackend(BaseEmailBackend):

    def __init__(self, fail_silently=False, api_url=None, api_token=None, timeout=None, **kwargs):
        super().__init__(fail_silently=fail_silently, **kwargs)
        self.api_url = api_url or settings.MAILER_API_URL
        self.api_token = api_token or settings.MAILER_API_TOKEN
        self.timeout = timeout or settings.MAILER_TIMEOUT_SECONDS

    def send_messages(self, email_messages):
        sent = 0
        for message in email_messages:
            try:
                self._post(message)
            except requests.RequestException:
                logger.exception("Mail connector rejected message to %s", message.to)
                if not self.fail_silently:
                    raise
                continue
            sent += 1
        return sent

    def _post(self, message):
        headers = {'Content-Type': 'application/json'}
        if self.api_token:
            headers['Authorization'] = f'Bearer {self.api_token}'
        response = requests.post(self.api_url, json=self.payload(message), headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return response

    @staticmethod
    def payload(message):
        html = None
        for content, mimetype in getattr(message, 'alternatives', []):
            if mimetype == 'text/html':
                html = content

        attachments = []
        for filename, content, mimetype in message.attachments:
            if isinstance(content, str):
                content = content.encode('utf-8')
            attachments.append({
                'filename': filename,
                'content': base64.b64encode(content).decode('ascii'),
                'contentType': mimetype,
                'encoding': 'base64',
            })

        return {
            'from': message.from_email,
            'to': list(message.to),
            'cc': list(message.cc),
            'subject': message.subject,
            'text': message.body,
            'html': html,
            'attachments': attachments,
        }
