"""
Tests for answer hashing, fingerprints and session tokens.
"""
from django.test import SimpleTestCase, override_settings

from examinations.services.integrity import (
    HashedAnswer, hash_answer, validate_answer_hash,
    create_secure_answer_data, validate_student_answer,
    create_multiple_choice_hashes, validate_multiple_choice_answer,
    create_answer_fingerprint, validate_answer_fingerprint,
    generate_session_token, validate_session_token
)


class AnswerHashTests(SimpleTestCase):
    def test_round_trip(self):
        """Every answer validates against its own hash."""
        for answer in ['Paris', ['b', 'a'], {'k': 'v'}, True, 42, 2.5, None]:
            hashed = hash_answer(answer, 'pepper')
            result = validate_answer_hash(answer, hashed)
            self.assertTrue(result.is_valid, answer)
            self.assertFalse(result.tampered)

    def test_one_changed_character_is_tampering(self):
        hashed = hash_answer('Paris', 'pepper')
        result = validate_answer_hash('Parix', hashed)
        self.assertFalse(result.is_valid)
        self.assertTrue(result.tampered)

    def test_hash_follows_answer_normalization(self):
        self.assertEqual(hash_answer(' Paris', 's').hash, hash_answer('paris', 's').hash)
        self.assertEqual(hash_answer(['b', 'a'], 's').hash, hash_answer(['a', 'b'], 's').hash)

    def test_random_salt_when_none_given(self):
        first = hash_answer('Paris')
        second = hash_answer('Paris')
        self.assertNotEqual(first.salt, second.salt)
        self.assertNotEqual(first.hash, second.hash)

    def test_malformed_hash_is_invalid_not_tampered(self):
        result = validate_answer_hash('Paris', HashedAnswer(hash='', salt='s'))
        self.assertFalse(result.is_valid)
        self.assertFalse(result.tampered)

    def test_unsupported_algorithm_is_invalid_not_tampered(self):
        result = validate_answer_hash('Paris', HashedAnswer(hash='abc', salt='s', algorithm='rot13'))
        self.assertFalse(result.is_valid)
        self.assertFalse(result.tampered)
        self.assertIn('rot13', result.reason)


class SecureAnswerDataTests(SimpleTestCase):
    def test_plaintext_answer_is_never_stored(self):
        options = [
            {'id': 'a', 'text': 'London', 'is_correct': False},
            {'id': 'b', 'text': 'Paris', 'isCorrect': True},
        ]
        data = create_secure_answer_data(7, ['b'], options=options)

        self.assertNotIn('b', [data.hashed_correct_answer, data.salt])
        for option in data.options:
            self.assertNotIn('is_correct', option)
            self.assertNotIn('isCorrect', option)

        self.assertTrue(validate_student_answer(['B'], data))
        self.assertFalse(validate_student_answer(['a'], data))


class MultipleChoiceHashTests(SimpleTestCase):
    def setUp(self):
        self.hashes = create_multiple_choice_hashes([
            {'id': 'a', 'text': 'Paris', 'is_correct': True},
            {'id': 'b', 'text': 'London', 'is_correct': False},
            {'id': 'c', 'text': 'Lyon', 'is_correct': True},
        ])

    def validate(self, selected):
        return validate_multiple_choice_answer(selected, self.hashes.question_salt, self.hashes.option_hashes)

    def test_options_share_one_salt(self):
        self.assertEqual(len(self.hashes.option_hashes), 3)
        self.assertEqual(len({oh.hash for oh in self.hashes.option_hashes}), 3)

    def test_all_correct_none_incorrect_passes(self):
        result = self.validate(['c', 'a'])
        self.assertTrue(result.is_correct)
        self.assertEqual(result.selected_correct, 2)
        self.assertEqual(result.selected_incorrect, 0)

    def test_missing_correct_option_fails(self):
        self.assertFalse(self.validate(['a']).is_correct)

    def test_extra_incorrect_option_fails(self):
        result = self.validate(['a', 'b', 'c'])
        self.assertFalse(result.is_correct)
        self.assertEqual(result.selected_incorrect, 1)

    def test_wrong_salt_matches_nothing(self):
        result = validate_multiple_choice_answer(['a', 'c'], 'other-salt', self.hashes.option_hashes)
        self.assertFalse(result.is_correct)
        self.assertEqual(result.selected_correct, 0)


class AnswerFingerprintTests(SimpleTestCase):
    def test_key_order_does_not_matter(self):
        first = create_answer_fingerprint({1: ['b'], 2: 'Paris'})
        second = create_answer_fingerprint({2: 'paris ', 1: ['b']})
        self.assertEqual(first.fingerprint, second.fingerprint)
        self.assertEqual(first.checksum, second.checksum)
        self.assertEqual(len(first.checksum), 8)
        self.assertEqual(first.item_count, 2)

    def test_altered_answer_is_detected(self):
        fingerprint = create_answer_fingerprint({1: ['b'], 2: 'Paris'}).fingerprint
        self.assertTrue(validate_answer_fingerprint({1: ['b'], 2: 'Paris'}, fingerprint))
        self.assertFalse(validate_answer_fingerprint({1: ['c'], 2: 'Paris'}, fingerprint))

    def test_empty_expected_fingerprint_is_rejected(self):
        self.assertFalse(validate_answer_fingerprint({1: 'a'}, ''))


@override_settings(EXAM_ENGINE={'SESSION_TOKEN_MAX_AGE': 3600})
class SessionTokenTests(SimpleTestCase):
    def test_token_is_bound_to_session_user_and_exam(self):
        token = generate_session_token(1, 2, 3)
        self.assertTrue(validate_session_token(token, 1, 2, 3))
        self.assertFalse(validate_session_token(token, 1, 2, 4))
        self.assertFalse(validate_session_token(token, 9, 2, 3))

    def test_tampered_token_is_rejected(self):
        token = generate_session_token(1, 2, 3)
        self.assertFalse(validate_session_token(token + 'x', 1, 2, 3))

    def test_expired_token_is_rejected(self):
        token = generate_session_token(1, 2, 3)
        self.assertFalse(validate_session_token(token, 1, 2, 3, max_age=-1))
