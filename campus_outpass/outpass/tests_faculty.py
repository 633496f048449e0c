from django.test import TestCase
from rest_framework import status

from .models import OutpassRequest, StudentClass
from .testing import OutpassFixtureMixin


class FacultyQueueTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.normal = self.create_outpass()
        self.second = self.make_student('second@campus.edu', 'Second Student', 'CSE21002')
        self.urgent = self.create_outpass(student=self.second, reason_category='emergency', is_emergency=True)
        mech_class = StudentClass.objects.create(name="MECH-A", year=2, department=self.other_department)
        self.mech_student = self.make_student('mech@campus.edu', 'Mech Student', 'ME21001', student_class=mech_class)
        self.mech_outpass = self.create_outpass(student=self.mech_student)
        self.auth(self.faculty)

    def test_pending_lists_department_requests(self):
        response = self.client.get('/api/outpass/pending')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()['data']
        self.assertEqual(data['summary'], {
            'totalPending': 2, 'urgentRequests': 1, 'normalRequests': 1, 'parentVerificationPending': 2,
        })
        ids = {r['applicationId'] for r in data['requests']}
        self.assertEqual(ids, {self.normal.request_id, self.urgent.request_id})

        urgent = next(r for r in data['requests'] if r['_id'] == self.urgent.pk)
        self.assertEqual(urgent['status'], 'urgent')
        self.assertEqual(urgent['metadata']['priority'], 'urgent')
        self.assertEqual(urgent['requestDetails']['reasonCategory'], 'Emergency')
        self.assertEqual(urgent['requestDetails']['exitTime'], '10:00')
        self.assertEqual(urgent['studentInfo']['rollNumber'], 'CSE21002')

    def test_pending_filters(self):
        data = self.client.get('/api/outpass/pending', {'status': 'urgent'}).json()['data']
        self.assertEqual([r['_id'] for r in data['requests']], [self.urgent.pk])

        data = self.client.get('/api/outpass/pending', {'search': 'CSE21001'}).json()['data']
        self.assertEqual([r['_id'] for r in data['requests']], [self.normal.pk])

        data = self.client.get('/api/outpass/pending', {'limit': 1}).json()['data']
        self.assertEqual(len(data['requests']), 1)
        self.assertTrue(data['pagination']['hasNextPage'])

    def test_pending_status_leaves_out_urgent_requests(self):
        data = self.client.get('/api/outpass/pending', {'status': 'pending'}).json()['data']
        self.assertEqual([r['_id'] for r in data['requests']], [self.normal.pk])
        self.assertEqual(data['summary']['totalPending'], 2)

    def test_search_matches_reason_category(self):
        data = self.client.get('/api/outpass/pending', {'search': 'emergency'}).json()['data']
        self.assertEqual([r['_id'] for r in data['requests']], [self.urgent.pk])

    def test_pending_requests_put_urgent_first(self):
        response = self.client.get('/api/faculty/pending-requests')

        body = response.json()
        self.assertEqual(body['summary'], {'pending': 2, 'urgent': 1})
        self.assertEqual(body['requests'][0]['requestId'], self.urgent.request_id)
        self.assertEqual(body['requests'][0]['displayStatus'], 'urgent')
        self.assertEqual(body['requests'][1]['displayStatus'], 'pending')

    def test_my_class_filter_for_class_teacher_outside_department(self):
        self.auth(self.other_faculty)
        self.assertEqual(self.client.get('/api/faculty/pending-requests').json()['summary']['pending'], 1)

        self.student_class.mentors.add(self.other_faculty)
        body = self.client.get('/api/faculty/pending-requests', {'filter': 'myclass'}).json()
        self.assertEqual(body['summary']['pending'], 2)

    def test_parent_verification_queue(self):
        self.client.post(
            f'/api/outpass/{self.normal.pk}/parent-verification', {'outcome': 'confirmed'}, format='json',
        )
        body = self.client.get('/api/faculty/parent-verification').json()

        self.assertEqual(body['count'], 1)
        self.assertEqual(body['requests'][0]['_id'], self.urgent.pk)
        self.assertEqual(body['requests'][0]['parentPhone'], '9876543210')
        self.assertEqual(body['requests'][0]['parentName'], 'Parent of Second Student')

    def test_history_excludes_pending(self):
        self.client.post(
            f'/api/outpass/{self.normal.pk}/faculty-approve', {'status': 'rejected', 'rejectionReason': 'No'}, format='json',
        )
        self.client.post(f'/api/outpass/{self.urgent.pk}/faculty-approve', {'status': 'approved'}, format='json')
        body = self.client.get('/api/faculty/history').json()

        self.assertEqual(body['count'], 2)
        self.assertEqual(body['summary']['forwarded'], 1)
        self.assertEqual(body['summary']['rejected'], 1)
        self.assertEqual(body['meta']['totalMatching'], 2)

        body = self.client.get('/api/faculty/history', {'rejectedByMe': 'true'}).json()
        self.assertEqual([o['requestId'] for o in body['outpasses']], [self.normal.request_id])
        body = self.client.get('/api/faculty/history', {'approvedByMe': 'true'}).json()
        self.assertEqual([o['requestId'] for o in body['outpasses']], [self.urgent.request_id])
        body = self.client.get('/api/faculty/history', {'studentRoll': '21002'}).json()
        self.assertEqual(body['count'], 1)

    def test_classes(self):
        body = self.client.get('/api/faculty/classes').json()
        self.assertEqual(body['department'], 'Computer Science')
        self.assertEqual(body['classes'], [{'id': self.student_class.pk, 'name': 'CSE-A', 'year': 2, 'isMine': True}])

    def test_student_profiles(self):
        body = self.client.get('/api/faculty/student-profiles').json()
        self.assertEqual(body['type'], 'list')
        self.assertEqual([s['rollNumber'] for s in body['students']], ['CSE21001', 'CSE21002'])

        body = self.client.get('/api/faculty/student-profiles', {'roll': 'cse21001'}).json()
        self.assertEqual(body['type'], 'single')
        self.assertEqual(body['score'], 100)
        self.assertEqual(len(body['outpasses']), 1)

        body = self.client.get('/api/faculty/student-profiles', {'class': 'cse-a'}).json()
        self.assertEqual(body['count'], 2)

    def test_student_outside_scope_is_404(self):
        response = self.client.get('/api/faculty/student-profiles', {'roll': 'ME21001'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_students_and_hod_cannot_use_faculty_endpoints(self):
        for user in (self.student, self.hod):
            self.auth(user)
            self.assertEqual(self.client.get('/api/faculty/pending-requests').status_code, status.HTTP_403_FORBIDDEN)
            self.assertEqual(self.client.get('/api/outpass/pending').status_code, status.HTTP_403_FORBIDDEN)
