import httpx
from .config import settings
from .lifecycle.complaint import Complaint


class NovuNotifier:
    """
    Triggers a Novu workflow for complaint lifecycle events
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = settings.novu_api_url,
        workflow_id: str = settings.novu_workflow_id,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.workflow_id = workflow_id
        self.client = client

    def recipients(self, complaint: Complaint) -> list[str]:
        subscribers = [complaint.owner_id]
        if complaint.assigned_staff and complaint.assigned_staff != complaint.owner_id:
            subscribers.append(complaint.assigned_staff)
        return subscribers

    def notify(self, event: str, complaint: Complaint) -> None:
        headers = {
            "Authorization": f"ApiKey {self.api_key}",
            "Content-Type": "application/json",
        }

        payload = {
            "name": self.workflow_id,
            "to": [{"subscriberId": s} for s in self.recipients(complaint)],
            "payload": {
                "event": event,
                "complaintId": complaint.id,
                "title": complaint.title,
                "status": complaint.status.value,
                "submittedTo": complaint.submitted_to,
            },
        }

        url = f"{self.api_url}/events/trigger"
        if self.client is not None:
            response = self.client.post(url, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=10.0) as client:
                response = client.post(url, json=payload, headers=headers)
        response.raise_for_status()


def notifier_from_settings():
    if not settings.novu_secret_key:
        return None
    return NovuNotifier(api_key=settings.novu_secret_key)
