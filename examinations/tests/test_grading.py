"""
Tests for the answer evaluators.
"""
from itertools import permutations

from django.test import SimpleTestCase

from examinations.grading import evaluate, normalize_answer
from examinations.grading.factory import EVALUATORS
from examinations.models import Question

MC = Question.QuestionType.MULTIPLE_CHOICE
OPTIONS = [
    {'id': 'a', 'text': 'Paris'},
    {'id': 'b', 'text': 'London'},
    {'id': 'c', 'text': 'Berlin'},
    {'id': 'd', 'text': 'Madrid'},
]


def question(question_type, correct_answer=None, options=None, points=1):
    return Question(question_type=question_type, correct_answer=correct_answer, options=options, points=points)


class MultipleChoiceEvaluatorTests(SimpleTestCase):
    def setUp(self):
        self.question = question(MC, correct_answer=['a', 'c', 'd'], options=OPTIONS, points=2)

    def test_any_selection_order_is_correct(self):
        """Every permutation of the correct set earns full points."""
        for selection in permutations(['a', 'c', 'd']):
            result = evaluate(list(selection), self.question)
            self.assertTrue(result.is_correct, selection)
            self.assertEqual(result.points_earned, 2)

    def test_subset_is_wrong(self):
        result = evaluate(['a', 'c'], self.question)
        self.assertFalse(result.is_correct)
        self.assertEqual(result.points_earned, 0)

    def test_superset_is_wrong(self):
        result = evaluate(['a', 'b', 'c', 'd'], self.question)
        self.assertFalse(result.is_correct)
        self.assertEqual(result.points_earned, 0)

    def test_repeated_selection_is_wrong(self):
        single = question(MC, correct_answer=['b'], options=OPTIONS, points=2)
        self.assertFalse(evaluate(['b', 'b'], single).is_correct)
        self.assertFalse(evaluate(['a', 'c', 'd', 'd'], self.question).is_correct)
        self.assertFalse(evaluate(['london', 'London'], single).is_correct)

    def test_scalar_response_is_a_singleton(self):
        single = question(MC, correct_answer=['b'], options=OPTIONS, points=2)
        self.assertTrue(evaluate('b', single).is_correct)
        self.assertTrue(evaluate(' B ', single).is_correct)

    def test_empty_correct_answer_never_passes(self):
        broken = question(MC, correct_answer=[], options=OPTIONS)
        self.assertFalse(evaluate([], broken).is_correct)
        self.assertFalse(evaluate(None, broken).is_correct)

    def test_legacy_option_text_is_resolved(self):
        """Older clients sent the option text instead of its id."""
        single = question(MC, correct_answer=['a'], options=OPTIONS, points=2)
        result = evaluate('paris', single)
        self.assertTrue(result.is_correct)
        self.assertEqual(result.points_earned, 2)

    def test_legacy_option_text_can_be_disabled(self):
        single = question(MC, correct_answer=['a'], options=OPTIONS)
        self.assertFalse(evaluate('Paris', single, allow_text_fallback=False).is_correct)

    def test_legacy_text_for_wrong_option_is_wrong(self):
        single = question(MC, correct_answer=['a'], options=OPTIONS)
        self.assertFalse(evaluate('London', single).is_correct)


class TextMatchEvaluatorTests(SimpleTestCase):
    def test_fill_blank_ignores_case_and_whitespace(self):
        q = question(Question.QuestionType.FILL_BLANK, correct_answer='paris', points=3)
        result = evaluate('Paris ', q)
        self.assertTrue(result.is_correct)
        self.assertEqual(result.points_earned, 3)

    def test_fill_blank_wrong(self):
        q = question(Question.QuestionType.FILL_BLANK, correct_answer='paris')
        self.assertFalse(evaluate('Lyon', q).is_correct)

    def test_missing_response_is_wrong(self):
        q = question(Question.QuestionType.FILL_BLANK, correct_answer='paris')
        self.assertFalse(evaluate(None, q).is_correct)

    def test_true_false_accepts_boolean_or_text(self):
        q = question(Question.QuestionType.TRUE_FALSE, correct_answer=True)
        self.assertTrue(evaluate(True, q).is_correct)
        self.assertTrue(evaluate(' TRUE', q).is_correct)
        self.assertFalse(evaluate('false', q).is_correct)


class ManualGradingEvaluatorTests(SimpleTestCase):
    def test_essay_is_not_auto_graded(self):
        q = question(Question.QuestionType.ESSAY, points=5)
        result = evaluate('A long answer', q)
        self.assertIsNone(result.is_correct)
        self.assertEqual(result.points_earned, 0)
        self.assertTrue(result.needs_manual_grading)

    def test_matching_is_not_auto_graded(self):
        q = question(Question.QuestionType.MATCHING, correct_answer={'a': '1'})
        result = evaluate({'a': '1'}, q)
        self.assertIsNone(result.is_correct)
        self.assertEqual(result.points_earned, 0)


class EvaluatorDispatchTests(SimpleTestCase):
    def test_every_question_type_has_an_evaluator(self):
        self.assertEqual(set(EVALUATORS), set(Question.QuestionType.values))

    def test_unknown_type_fails_safe(self):
        q = question('hotspot', correct_answer='x')
        result = evaluate('x', q)
        self.assertFalse(result.is_correct)
        self.assertEqual(result.points_earned, 0)

    def test_points_default_to_one(self):
        q = question(Question.QuestionType.FILL_BLANK, correct_answer='x', points=None)
        self.assertEqual(evaluate('x', q).points_earned, 1)

    def test_explicit_points_override_question_points(self):
        q = question(Question.QuestionType.FILL_BLANK, correct_answer='x', points=1)
        self.assertEqual(evaluate('x', q, points=5).points_earned, 5)

    def test_points_are_never_negative(self):
        q = question(Question.QuestionType.FILL_BLANK, correct_answer='x')
        self.assertEqual(evaluate('x', q, points=-3).points_earned, 0)


class NormalizeAnswerTests(SimpleTestCase):
    def test_scalars(self):
        self.assertEqual(normalize_answer(None), '')
        self.assertEqual(normalize_answer('  Paris '), 'paris')
        self.assertEqual(normalize_answer(True), 'true')
        self.assertEqual(normalize_answer(2.0), '2')
        self.assertEqual(normalize_answer(2.5), '2.5')

    def test_lists_are_sorted(self):
        self.assertEqual(normalize_answer(['B', 'a']), normalize_answer(['a', 'b']))
        self.assertEqual(normalize_answer(['B', 'a']), 'a,b')

    def test_mapping_keys_are_sorted(self):
        self.assertEqual(normalize_answer({'y': 1, 'x': 'A'}), 'x:a,y:1')
