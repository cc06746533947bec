import requests
import sys
from datetime import datetime

class BonhomieAPITester:
    def __init__(self, base_url="http://localhost:8000/api"):
        self.base_url = base_url
        self.admin_token = None
        self.student_token = None
        self.event_id = None
        self.tests_run = 0
        self.tests_passed = 0
        self.test_results = []

    def log_test(self, name, success, details=""):
        """Log test result"""
        self.tests_run += 1
        if success:
            self.tests_passed += 1
            print(f"✅ {name}")
        else:
            print(f"❌ {name} - {details}")

        self.test_results.append({
            "test": name,
            "success": success,
            "details": details
        })

    def run_test(self, name, method, endpoint, expected_status, data=None, headers=None):
        """Run a single API test"""
        url = f"{self.base_url}/{endpoint}"
        test_headers = {'Content-Type': 'application/json'}
        if headers:
            test_headers.update(headers)

        try:
            if method == 'GET':
                response = requests.get(url, headers=test_headers)
            elif method == 'POST':
                response = requests.post(url, json=data, headers=test_headers)
            elif method == 'PUT':
                response = requests.put(url, json=data, headers=test_headers)
            elif method == 'DELETE':
                response = requests.delete(url, headers=test_headers)

            success = response.status_code == expected_status
            details = f"Status: {response.status_code}"

            if not success:
                try:
                    error_data = response.json()
                    details += f", Error: {error_data.get('detail', 'Unknown error')}"
                except ValueError:
                    details += f", Response: {response.text[:100]}"

            self.log_test(name, success, details)
            return success, response.json() if success and response.content else {}

        except requests.RequestException as e:
            self.log_test(name, False, f"Exception: {str(e)}")
            return False, {}

    def test_health_endpoints(self):
        print("\n🔍 Testing Health Endpoints...")
        self.run_test("Root API endpoint", "GET", "", 200)
        self.run_test("Health check endpoint", "GET", "health", 200)

    def test_public_endpoints(self):
        print("\n🔍 Testing Public Endpoints...")
        self.run_test("Registration status", "GET", "registration-status", 200)
        success, events = self.run_test("Event list", "GET", "events", 200)
        if success and events:
            self.event_id = events[0]["id"]
        self.run_test("Live events", "GET", "events/live", 200)
        self.run_test("Winners feed", "GET", "winners", 200)

    def test_admin_login(self):
        print("\n🔍 Testing Admin Authentication...")
        admin_data = {
            "college_email": "admin@bonhomie.com",
            "password": "password123"
        }
        success, response = self.run_test("Admin login", "POST", "auth/login", 200, admin_data)
        if success and 'access_token' in response:
            self.admin_token = response['access_token']
            print(f"   Admin token obtained: {self.admin_token[:20]}...")
            return True
        return False

    def test_student_signup(self):
        """Sign up a throwaway student account"""
        print("\n🔍 Testing Student Signup...")
        timestamp = datetime.now().strftime("%H%M%S")
        test_data = {
            "full_name": f"Test User {timestamp}",
            "college_email": f"test{timestamp}@college.edu",
            "roll_number": f"99TS{timestamp}",
            "phone": f"98765{timestamp[:5]}",
            "password": "testpass123",
            "gender": "Male",
            "department": "Computer Science",
            "year_of_study": "2"
        }
        success, response = self.run_test("Student signup", "POST", "auth/signup", 200, test_data)
        if success and 'access_token' in response:
            self.student_token = response['access_token']
            return True
        return False

    def test_student_endpoints(self):
        if not self.student_token:
            print("\n❌ Skipping student tests - no student token")
            return

        print("\n🔍 Testing Student Endpoints...")
        headers = {'Authorization': f'Bearer {self.student_token}'}
        self.run_test("Get own profile", "GET", "me", 200, headers=headers)
        self.run_test("Get own registrations", "GET", "me/registrations", 200, headers=headers)
        self.run_test("Admin stats forbidden for students", "GET", "admin/stats", 403, headers=headers)

    def test_admin_dashboard(self):
        if not self.admin_token:
            print("\n❌ Skipping admin tests - no admin token")
            return

        print("\n🔍 Testing Admin Dashboard...")
        headers = {'Authorization': f'Bearer {self.admin_token}'}
        self.run_test("Admin stats", "GET", "admin/stats", 200, headers=headers)
        self.run_test("Admin settings", "GET", "admin/settings", 200, headers=headers)
        self.run_test("Coordinator list", "GET", "admin/coordinators", 200, headers=headers)
        self.run_test("Audit logs", "GET", "admin/logs", 200, headers=headers)

        if self.event_id:
            base = f"manage/events/{self.event_id}"
            self.run_test("Event participants", "GET", f"{base}/participants", 200, headers=headers)
            self.run_test("Pending payments", "GET", f"{base}/pending-payments", 200, headers=headers)
            self.run_test("Event summary", "GET", f"{base}/summary", 200, headers=headers)

    def run_all_tests(self):
        print("🚀 Starting Bonhomie API Testing...")
        print(f"Testing against: {self.base_url}")

        self.test_health_endpoints()
        self.test_public_endpoints()
        admin_login_success = self.test_admin_login()
        self.test_student_signup()

        if admin_login_success:
            self.test_admin_dashboard()
        self.test_student_endpoints()

        return self.print_summary()

    def print_summary(self):
        print(f"\n📊 Test Summary:")
        print(f"Tests run: {self.tests_run}")
        print(f"Tests passed: {self.tests_passed}")
        print(f"Success rate: {(self.tests_passed/self.tests_run*100):.1f}%")

        if self.tests_passed < self.tests_run:
            print(f"\n❌ Failed tests:")
            for result in self.test_results:
                if not result['success']:
                    print(f"  - {result['test']}: {result['details']}")

        return self.tests_passed == self.tests_run

def main():
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000/api"
    tester = BonhomieAPITester(base_url)
    success = tester.run_all_tests()
    return 0 if success else 1

if __name__ == "__main__":
    sys.exit(main())
