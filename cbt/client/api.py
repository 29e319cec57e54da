"""
HTTP client for the CBT API.

Every call goes through ``CBTClient._call``: the bearer token comes from the
``SessionContext``, non-2xx responses raise ``APIError`` with the server's
``error`` message, and transport failures raise ``APIError`` with status 0.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from cbt.client.context import SessionContext

logger = logging.getLogger(__name__)

API_PREFIX = "/api"
DEFAULT_TIMEOUT = 15.0


class APIError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{status_code}] {message}")


class CBTClient:
    def __init__(self, context: Optional[SessionContext] = None, base_url: str = "",
                 http: Optional[httpx.Client] = None, timeout: float = DEFAULT_TIMEOUT):
        self.context = context if context is not None else SessionContext()
        self._owns_http = http is None
        self.http = http if http is not None else httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _call(self, method: str, resource: str, action: str, *, params: Optional[Dict[str, Any]] = None,
              json: Optional[Dict[str, Any]] = None, auth: bool = True) -> Dict[str, Any]:
        headers = {}
        if auth and self.context.token:
            headers["Authorization"] = f"Bearer {self.context.token}"
        query = {"action": action}
        query.update({k: v for k, v in (params or {}).items() if v is not None})

        try:
            response = self.http.request(method, f"{API_PREFIX}/{resource}", params=query, json=json,
                                         headers=headers)
        except httpx.RequestError as e:
            logger.warning(f"{method} {resource}?action={action} failed: {e}")
            raise APIError(0, "Network error. Please check your connection.") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_success:
            return data
        message = data.get("error") if isinstance(data, dict) else None
        raise APIError(response.status_code, message or response.reason_phrase or "Request failed")

    # ---------- Auth ----------

    def _signed_in(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.context.token = data["token"]
        self.context.user = data["user"]
        return data

    def register(self, full_name: str, email: str, password: str, phone: Optional[str] = None) -> Dict[str, Any]:
        body = {"fullName": full_name, "email": email, "password": password, "phone": phone}
        return self._signed_in(self._call("POST", "auth", "register", json=body, auth=False))

    def login(self, email: str, password: str) -> Dict[str, Any]:
        body = {"email": email, "password": password}
        return self._signed_in(self._call("POST", "auth", "login", json=body, auth=False))

    def logout(self) -> None:
        self.context.clear()

    def profile(self) -> Dict[str, Any]:
        try:
            data = self._call("GET", "auth", "profile")
        except APIError as e:
            if e.status_code in (401, 403):
                self.context.clear()
            raise
        self.context.user = data["user"]
        return data

    def check_access(self) -> Dict[str, Any]:
        """Current access status; an unreadable profile counts as expired."""
        try:
            return self.profile()["access"]
        except APIError:
            return {"hasAccess": False, "type": "expired", "expiresAt": None}

    def unlock(self, code: str) -> Dict[str, Any]:
        data = self._call("POST", "auth", "unlock", json={"code": code})
        self.profile()
        return data

    # ---------- Exams ----------

    def exam_types(self) -> List[str]:
        return self._call("GET", "exams", "types")["examTypes"]

    def subjects(self, exam_type: str) -> List[str]:
        return self._call("GET", "exams", "subjects", params={"examType": exam_type})["subjects"]

    def years(self, exam_type: str, subject: str) -> List[int]:
        return self._call("GET", "exams", "years", params={"examType": exam_type, "subject": subject})["years"]

    def start_exam(self, exam_type: str, subject: str, year: Optional[int] = None,
                   number_of_questions: int = 40) -> Dict[str, Any]:
        body = {"examType": exam_type, "subject": subject, "year": year, "numberOfQuestions": number_of_questions}
        data = self._call("POST", "exams", "start", json=body)
        self.context.current_session = data
        return data

    def submit_answer(self, session_id: str, question_id: int, selected_answer: str,
                      marked_for_review: bool = False) -> Dict[str, Any]:
        body = {
            "sessionId": session_id,
            "questionId": question_id,
            "selectedAnswer": selected_answer,
            "markedForReview": marked_for_review,
        }
        return self._call("POST", "exams", "submit-answer", json=body)

    def complete_exam(self, session_id: str) -> Dict[str, Any]:
        data = self._call("POST", "exams", "complete", json={"sessionId": session_id})
        self.context.exam_results = data
        self.context.current_session = None
        return data

    # ---------- Admin ----------

    def generate_codes(self, quantity: int = 1, duration: int = 9) -> List[str]:
        return self._call("POST", "admin", "generate-codes", json={"quantity": quantity, "duration": duration})["codes"]

    def get_codes(self) -> List[Dict[str, Any]]:
        return self._call("GET", "admin", "get-codes")["codes"]

    def delete_code(self, code_id: int) -> Dict[str, Any]:
        return self._call("DELETE", "admin", "delete-code", params={"codeId": code_id})

    def upload_questions(self, questions: List[Dict[str, Any]]) -> int:
        return self._call("POST", "admin", "upload-questions", json={"questions": questions})["count"]

    def delete_question(self, question_id: int) -> Dict[str, Any]:
        return self._call("DELETE", "admin", "delete-question", params={"questionId": question_id})

    def get_users(self) -> List[Dict[str, Any]]:
        return self._call("GET", "admin", "get-users")["users"]

    def grant_premium(self, user_id: str, months: int = 9) -> Dict[str, Any]:
        return self._call("POST", "admin", "grant-premium", json={"userId": user_id, "months": months})

    def revoke_premium(self, user_id: str) -> Dict[str, Any]:
        return self._call("DELETE", "admin", "revoke-premium", params={"userId": user_id})

    def statistics(self) -> Dict[str, int]:
        return self._call("GET", "admin", "statistics")

    def recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._call("GET", "admin", "recent-activity", params={"limit": limit})["sessions"]
