"""
Answer Integrity Service.

Salted hashing for tamper-evident answer handling:
- hash/validate single answers
- secure answer data that never carries the plaintext correct answer
- per-option hashes for multiple choice questions
- order-independent fingerprints over a whole answer set
- signed, time-limited session tokens

Normalization is shared with the evaluators (``grading.normalize``) so a hash
comparison and a value comparison never disagree on equivalence.
"""
import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.core import signing

from examinations.grading.normalize import normalize_answer

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = 'sha256'
HASH_VERSION = '1.0'
SALT_LENGTH = 16
SESSION_TOKEN_SALT = 'examinations.session-token'


@dataclass
class HashedAnswer:
    hash: str
    salt: str
    algorithm: str = DEFAULT_ALGORITHM
    timestamp: int = 0


@dataclass
class AnswerValidation:
    is_valid: bool
    tampered: bool
    reason: Optional[str] = None


@dataclass
class SecureAnswerData:
    question_id: Any
    hashed_correct_answer: str
    salt: str
    algorithm: str = DEFAULT_ALGORITHM
    version: str = HASH_VERSION
    created: int = 0
    options: Optional[list] = None


@dataclass
class OptionHash:
    option_id: str
    hash: str
    is_correct: bool


@dataclass
class MultipleChoiceHashes:
    question_salt: str
    option_hashes: List[OptionHash] = field(default_factory=list)


@dataclass
class MultipleChoiceValidation:
    is_correct: bool
    correct_option_ids: List[str]
    selected_correct: int
    selected_incorrect: int


@dataclass
class AnswerFingerprint:
    fingerprint: str
    checksum: str
    item_count: int
    created: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_salt() -> str:
    return secrets.token_hex(SALT_LENGTH)


def _digest(value: str, algorithm: str) -> str:
    return hashlib.new(algorithm, value.encode('utf-8')).hexdigest()


def hash_answer(answer: Any, salt: Optional[str] = None, algorithm: str = DEFAULT_ALGORITHM) -> HashedAnswer:
    """Normalize the answer, append the salt and hash the result."""
    salt = salt or generate_salt()
    return HashedAnswer(
        hash=_digest(normalize_answer(answer) + salt, algorithm),
        salt=salt,
        algorithm=algorithm,
        timestamp=_now_ms()
    )


def validate_answer_hash(answer: Any, hashed: HashedAnswer) -> AnswerValidation:
    """
    Check ``answer`` against a previously computed hash.

    A malformed hash record is reported as invalid without being marked
    tampered; a well-formed record that does not match is tampered.
    """
    if not hashed or not hashed.hash or not hashed.salt or not hashed.algorithm:
        return AnswerValidation(is_valid=False, tampered=False, reason='Invalid hash structure')

    if hashed.algorithm not in hashlib.algorithms_available:
        return AnswerValidation(
            is_valid=False, tampered=False,
            reason=f'Unsupported hash algorithm: {hashed.algorithm}'
        )

    expected = hash_answer(answer, hashed.salt, hashed.algorithm)
    if hmac.compare_digest(expected.hash, hashed.hash):
        return AnswerValidation(is_valid=True, tampered=False)

    return AnswerValidation(
        is_valid=False, tampered=True,
        reason='Hash mismatch - answer may have been tampered with'
    )


def sanitize_options(options: list) -> list:
    """Strip correctness markers from options before they reach a client."""
    sanitized = []
    for option in options:
        if isinstance(option, dict):
            option = {k: v for k, v in option.items() if k not in ('is_correct', 'isCorrect')}
        sanitized.append(option)
    return sanitized


def create_secure_answer_data(question_id: Any, correct_answer: Any, options: Optional[list] = None) -> SecureAnswerData:
    salt = generate_salt()
    hashed = hash_answer(correct_answer, salt)
    return SecureAnswerData(
        question_id=question_id,
        hashed_correct_answer=hashed.hash,
        salt=salt,
        algorithm=hashed.algorithm,
        created=_now_ms(),
        options=sanitize_options(options) if options else None
    )


def validate_student_answer(student_answer: Any, secure_data: SecureAnswerData) -> bool:
    candidate = hash_answer(student_answer, secure_data.salt, secure_data.algorithm)
    return hmac.compare_digest(candidate.hash, secure_data.hashed_correct_answer)


def create_multiple_choice_hashes(options: List[Dict[str, Any]], question_salt: Optional[str] = None) -> MultipleChoiceHashes:
    """
    Hash each option id with one shared per-question salt.

    ``options`` are ``{id, text, is_correct}`` mappings. The option hashes let a
    client prove which option it selected without the server ever sending
    which option is correct.
    """
    salt = question_salt or generate_salt()
    return MultipleChoiceHashes(
        question_salt=salt,
        option_hashes=[
            OptionHash(
                option_id=str(option['id']),
                hash=hash_answer(option['id'], salt).hash,
                is_correct=bool(option.get('is_correct', option.get('isCorrect', False)))
            )
            for option in options
        ]
    )


def validate_multiple_choice_answer(selected_option_ids: List[Any], question_salt: str,
                                    option_hashes: List[OptionHash]) -> MultipleChoiceValidation:
    correct_ids = [oh.option_id for oh in option_hashes if oh.is_correct]
    by_id = {oh.option_id: oh for oh in option_hashes}

    valid_selections = []
    for option_id in dict.fromkeys(str(o) for o in selected_option_ids):
        known = by_id.get(option_id)
        if known and hmac.compare_digest(hash_answer(option_id, question_salt).hash, known.hash):
            valid_selections.append(option_id)

    selected_correct = sum(1 for option_id in valid_selections if option_id in correct_ids)
    selected_incorrect = len(valid_selections) - selected_correct

    return MultipleChoiceValidation(
        is_correct=selected_correct == len(correct_ids) and selected_incorrect == 0,
        correct_option_ids=correct_ids,
        selected_correct=selected_correct,
        selected_incorrect=selected_incorrect
    )


def create_answer_fingerprint(answers: Dict[Any, Any]) -> AnswerFingerprint:
    """Order-independent fingerprint over a ``{question_id: answer}`` mapping."""
    joined = '|'.join(
        f"{key}:{normalize_answer(answers[key])}"
        for key in sorted(answers, key=str)
    )
    fingerprint = _digest(joined, DEFAULT_ALGORITHM)
    return AnswerFingerprint(
        fingerprint=fingerprint,
        checksum=hashlib.md5(fingerprint.encode('utf-8')).hexdigest()[:8],
        item_count=len(answers),
        created=_now_ms()
    )


def validate_answer_fingerprint(answers: Dict[Any, Any], expected_fingerprint: str) -> bool:
    if not expected_fingerprint:
        return False
    current = create_answer_fingerprint(answers)
    return hmac.compare_digest(current.fingerprint, expected_fingerprint)


def _session_token_value(session_id, user_id, exam_id) -> str:
    return f"{session_id}:{user_id}:{exam_id}"


def generate_session_token(session_id, user_id, exam_id) -> str:
    signer = signing.TimestampSigner(salt=SESSION_TOKEN_SALT)
    return signer.sign(_session_token_value(session_id, user_id, exam_id))


def validate_session_token(token: str, session_id, user_id, exam_id, max_age: Optional[int] = None) -> bool:
    if max_age is None:
        max_age = settings.EXAM_ENGINE.get('SESSION_TOKEN_MAX_AGE', 24 * 60 * 60)
    signer = signing.TimestampSigner(salt=SESSION_TOKEN_SALT)
    try:
        value = signer.unsign(token, max_age=max_age)
    except signing.SignatureExpired:
        logger.info("Expired session token for session %s", session_id)
        return False
    except signing.BadSignature:
        logger.warning("Bad session token signature for session %s", session_id)
        return False
    return value == _session_token_value(session_id, user_id, exam_id)
