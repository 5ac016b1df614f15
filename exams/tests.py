import itertools
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient

from .models import Exam, Question, Option
from .shuffling import (
    OrderedOption,
    SHUFFLE_V1_CHARSUM,
    SHUFFLE_V2_SHA256,
    base_order,
    resolve_option_order,
    seeded_shuffle,
    shuffle_key,
    shuffle_seed,
)

User = get_user_model()


class OptionOrderTestCase(SimpleTestCase):
    def setUp(self):
        # Deliberately out of authoring order, with a sequence tie
        self.options = [
            OrderedOption(id=14, sequence=2),
            OrderedOption(id=11, sequence=0),
            OrderedOption(id=13, sequence=1),
            OrderedOption(id=12, sequence=1),
            OrderedOption(id=15, sequence=3),
        ]

    def test_no_shuffle_returns_base_order(self):
        ordered = resolve_option_order(self.options, 7, 3, shuffle=False, attempt_id='a1')
        self.assertEqual([o.id for o in ordered], [11, 12, 13, 14, 15])

    def test_sequence_ties_broken_by_id(self):
        ordered = base_order([OrderedOption(id=9, sequence=0), OrderedOption(id=2, sequence=0)])
        self.assertEqual([o.id for o in ordered], [2, 9])

    def test_shuffle_is_deterministic(self):
        first = resolve_option_order(self.options, 7, 3, shuffle=True, attempt_id='a1')
        second = resolve_option_order(list(reversed(self.options)), 7, 3, shuffle=True, attempt_id='a1')
        self.assertEqual(first, second)

    def test_shuffle_is_a_permutation(self):
        for version in (SHUFFLE_V1_CHARSUM, SHUFFLE_V2_SHA256):
            ordered = resolve_option_order(self.options, 7, 3, shuffle=True, attempt_id='a1', version=version)
            self.assertCountEqual(ordered, self.options)

    def test_input_is_not_mutated(self):
        before = list(self.options)
        resolve_option_order(self.options, 7, 3, shuffle=True, attempt_id='a1')
        self.assertEqual(self.options, before)

    def test_single_option_is_returned_as_is(self):
        only = [OrderedOption(id=1, sequence=0)]
        self.assertEqual(resolve_option_order(only, 1, 1, shuffle=True, attempt_id='x'), only)

    def test_different_students_get_different_orders(self):
        orders = {
            tuple(o.id for o in resolve_option_order(self.options, user_id, 3, shuffle=True, attempt_id='a1'))
            for user_id in range(1, 40)
        }
        self.assertGreater(len(orders), 1)

    def test_shuffle_key(self):
        self.assertEqual(shuffle_key(5, 9, 'abc'), '5-9-abc')
        self.assertEqual(shuffle_key(5, 9), '5-9')

    def test_charsum_seed(self):
        # '1' + '-' + '2'
        self.assertEqual(shuffle_seed('1-2', SHUFFLE_V1_CHARSUM), 49 + 45 + 50)

    def test_sha256_seed_fits_31_bits(self):
        seed = shuffle_seed('12-34-attempt', SHUFFLE_V2_SHA256)
        self.assertGreaterEqual(seed, 0)
        self.assertLessEqual(seed, 0x7FFFFFFF)

    def test_unknown_version_rejected(self):
        with self.assertRaises(ValueError):
            resolve_option_order(self.options, 1, 1, shuffle=True, attempt_id='a', version=99)

    @patch('exams.shuffling._random_stream', lambda seed, version: itertools.repeat(1.0))
    def test_random_value_of_one_is_clamped(self):
        items = ['a', 'b', 'c', 'd']
        self.assertEqual(seeded_shuffle(items, 123), items)


class QuestionApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='testpass123', is_staff=True,
        )
        self.student = User.objects.create_user(
            username='student', email='student@example.com', password='testpass123',
        )
        self.exam = Exam.objects.create(title='Physics', duration_minutes=30, total_marks=10, is_active=True)

    def test_create_question_with_options(self):
        self.client.force_authenticate(user=self.admin)
        payload = {
            'exam': self.exam.id,
            'question_text': 'Unit of force?',
            'question_type': 'mcq',
            'marks': 2,
            'options': ['Joule', 'Newton', 'Watt'],
            'correct_answer': 'Newton',
        }
        response = self.client.post('/api/questions/', payload, format='json')
        self.assertEqual(response.status_code, 201)

        question = Question.objects.get(id=response.data['id'])
        options = list(question.options.order_by('sequence'))
        self.assertEqual([o.text for o in options], ['Joule', 'Newton', 'Watt'])
        self.assertEqual([o.is_correct for o in options], [False, True, False])

    def test_create_question_requires_matching_correct_answer(self):
        self.client.force_authenticate(user=self.admin)
        payload = {
            'question_text': 'Unit of power?',
            'options': ['Joule', 'Newton'],
            'correct_answer': 'Watt',
        }
        response = self.client.post('/api/questions/', payload, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('correct_answer', response.data['details'])

    def test_student_cannot_create_question(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.post('/api/questions/', {'question_text': 'x'}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_bulk_upload(self):
        self.client.force_authenticate(user=self.admin)
        csv_body = (
            "question_text,question_type,category,difficulty,marks,options,correct_answer\n"
            "2+2?,mcq,Math,easy,1,3|4|5,4\n"
            "Sky is blue?,true_false,General,easy,1,True|False,True\n"
        )
        upload = SimpleUploadedFile('questions.csv', csv_body.encode('utf-8'), content_type='text/csv')
        response = self.client.post(
            '/api/questions/bulk-upload/', {'file': upload, 'exam_id': self.exam.id}, format='multipart',
        )
        self.assertEqual(response.status_code, 201)
        questions = list(self.exam.questions.order_by('sequence'))
        self.assertEqual([q.sequence for q in questions], [0, 1])
        self.assertTrue(Option.objects.get(question=questions[0], text='4').is_correct)

    def test_bulk_upload_rejects_bad_csv(self):
        self.client.force_authenticate(user=self.admin)
        upload = SimpleUploadedFile('questions.csv', b"wrong,header\n1,2\n", content_type='text/csv')
        response = self.client.post('/api/questions/bulk-upload/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Question.objects.count(), 0)


class ExamApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.student = User.objects.create_user(
            username='student', email='student@example.com', password='testpass123',
        )
        Exam.objects.create(title='Published', duration_minutes=30, is_active=True)
        Exam.objects.create(title='Draft', duration_minutes=30, is_active=False)

    def test_students_only_see_active_exams(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([e['title'] for e in response.data], ['Published'])
