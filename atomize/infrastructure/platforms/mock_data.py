"""Seed stories served by the in-memory platform."""

MOCK_STORIES = (
    {
        "id": "STORY-001",
        "title": "Implement user authentication API",
        "type": "User Story",
        "state": "New",
        "assignedTo": "john.doe@company.com",
        "estimation": 8,
        "tags": ["backend", "api", "security"],
        "description": "As a user, I want to be able to login securely so that I can access my account",
        "areaPath": "MyProject\\Backend",
        "iteration": "Sprint 23",
        "priority": 1,
        "customFields": {"Custom.Team": "Platform Engineering", "Custom.Complexity": "High"},
    },
    {
        "id": "STORY-002",
        "title": "Create user profile dashboard",
        "type": "User Story",
        "state": "Active",
        "assignedTo": "jane.smith@company.com",
        "estimation": 5,
        "tags": ["frontend", "react", "ui"],
        "description": "As a user, I want to view and edit my profile information",
        "areaPath": "MyProject\\Frontend",
        "iteration": "Sprint 23",
        "priority": 2,
        "customFields": {"Custom.Team": "UI Team", "Custom.Complexity": "Medium"},
    },
    {
        "id": "STORY-003",
        "title": "Implement payment processing",
        "type": "User Story",
        "state": "New",
        "assignedTo": "bob.johnson@company.com",
        "estimation": 13,
        "tags": ["backend", "api", "payment"],
        "description": "As a user, I want to securely process payments",
        "areaPath": "MyProject\\Backend",
        "iteration": "Sprint 24",
        "priority": 1,
        "customFields": {"Custom.Team": "Platform Engineering", "Custom.Complexity": "Very High"},
    },
    {
        "id": "STORY-004",
        "title": "Add search functionality",
        "type": "User Story",
        "state": "Approved",
        "assignedTo": "alice.williams@company.com",
        "estimation": 8,
        "tags": ["fullstack", "search", "api", "frontend"],
        "description": "As a user, I want to search for items quickly",
        "areaPath": "MyProject\\Features",
        "iteration": "Sprint 23",
        "priority": 2,
        "customFields": {"Custom.Team": "Search Team", "Custom.Complexity": "High"},
    },
    {
        "id": "STORY-005",
        "title": "Optimize database queries",
        "type": "User Story",
        "state": "New",
        "assignedTo": "charlie.brown@company.com",
        "estimation": 3,
        "tags": ["backend", "database", "performance"],
        "description": "As a developer, I want faster query performance",
        "areaPath": "MyProject\\Backend",
        "iteration": "Sprint 24",
        "priority": 3,
        "customFields": {"Custom.Team": "Platform Engineering", "Custom.Complexity": "Medium"},
    },
    {
        "id": "STORY-006",
        "title": "Mobile responsive design",
        "type": "User Story",
        "state": "New",
        "assignedTo": "diana.martinez@company.com",
        "estimation": 5,
        "tags": ["frontend", "mobile", "css"],
        "description": "As a mobile user, I want the app to work on my phone",
        "areaPath": "MyProject\\Frontend",
        "iteration": "Sprint 24",
        "priority": 2,
        "customFields": {"Custom.Team": "UI Team", "Custom.Complexity": "Medium"},
    },
    {
        "id": "STORY-007",
        "title": "Implement data export feature",
        "type": "User Story",
        "state": "Active",
        "assignedTo": "eve.davis@company.com",
        "estimation": 8,
        "tags": ["backend", "api", "export"],
        "description": "As a user, I want to export my data to CSV/Excel",
        "areaPath": "MyProject\\Backend",
        "iteration": "Sprint 23",
        "priority": 3,
        "customFields": {"Custom.Team": "Platform Engineering", "Custom.Complexity": "High"},
        "children": [
            {
                "id": "TASK-101",
                "title": "Design export API",
                "type": "Task",
                "state": "Done",
                "estimation": 2,
                "parentId": "STORY-007",
            },
            {
                "id": "TASK-102",
                "title": "Implement CSV writer",
                "type": "Task",
                "state": "Done",
                "estimation": 4,
                "parentId": "STORY-007",
            },
            {
                "id": "TASK-103",
                "title": "Write unit tests for export",
                "type": "Task",
                "state": "Done",
                "estimation": 2,
                "parentId": "STORY-007",
            },
        ],
    },
    {
        "id": "STORY-008",
        "title": "Implement audit log endpoint",
        "type": "User Story",
        "state": "Closed",
        "assignedTo": "eve.davis@company.com",
        "estimation": 10,
        "tags": ["backend", "api"],
        "areaPath": "MyProject\\Backend",
        "iteration": "Sprint 22",
        "priority": 2,
        "children": [
            {
                "id": "TASK-111",
                "title": "Design audit log API",
                "type": "Task",
                "state": "Done",
                "estimation": 2,
                "parentId": "STORY-008",
            },
            {
                "id": "TASK-112",
                "title": "Implement audit log storage",
                "type": "Task",
                "state": "Done",
                "estimation": 5,
                "parentId": "STORY-008",
            },
            {
                "id": "TASK-113",
                "title": "Write unit tests for audit log",
                "type": "Task",
                "state": "Done",
                "estimation": 2,
                "parentId": "STORY-008",
            },
            {
                "id": "TASK-114",
                "title": "Deploy to staging",
                "type": "Task",
                "state": "Done",
                "estimation": 1,
                "parentId": "STORY-008",
            },
        ],
    },
)
