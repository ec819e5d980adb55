from __future__ import annotations

DESCRIPTION_UPDATE = """\
Update both plan descriptions with `workplan describe`. A text-only answer does not count.

**Original request:** <plan_translated_request>

**Required steps:**
1. Write a short description that summarises what the plan will accomplish
2. Write a long description that covers every requirement and technical detail
3. Save both descriptions with `workplan describe <plan_id>`
4. Summarise what you changed in two sentences"""

DESCRIPTION_UPDATE_REWORK = """\
The plan descriptions need rework. Fix them and save them again with `workplan describe`.

**Problems found:** <rework_reason>

**Required steps:**
1. Read the feedback above
2. Correct the short and long descriptions
3. Save them with `workplan describe <plan_id>`
4. Summarise what was fixed"""

DESCRIPTION_REVIEW = """\
<checklist>

If you find problems, report them with `workplan needs-work <plan_id>`. \
If everything looks fine, confirm the item with `workplan done <plan_id>`."""

DESCRIPTION_REVIEW_REWORK = """\
The description review needs rework. Address the issues and finish the review.

**Problems found:** <rework_reason>"""

ARCHITECTURE_CREATION = """\
Create the technical architecture for this plan and save it with `workplan architecture`.

**Original request:** <plan_translated_request>

**Plan context:**
- **Short description:** <plan_short_description>
- **Long description:** <plan_long_description>

The document must be a JSON object with a non-empty "components" array \
(each item has "id" and "name") and a "connections" array (each item has "from" and "to")."""

ARCHITECTURE_CREATION_REWORK = """\
The architecture needs rework. Fix it and save it again with `workplan architecture`.

**Problems found:** <rework_reason>

**Current architecture:**
<plan_architecture>"""

ARCHITECTURE_REVIEW = DESCRIPTION_REVIEW

ARCHITECTURE_REVIEW_REWORK = """\
The architecture review needs rework. Address the issues and finish the review.

**Problems found:** <rework_reason>"""

POINTS_CREATION = """\
Break the plan down into points and add them with `workplan point add`.

**Original request:** <plan_translated_request>

**Plan context:**
- **Short description:** <plan_short_description>
- **Long description:** <plan_long_description>
- **Architecture:** <plan_architecture>

Every point needs a short name, both descriptions, review and testing instructions, \
expected inputs and outputs, and its dependencies ("-1" marks an independent point)."""

POINTS_CREATION_REWORK = """\
The plan points need rework. Fix point(s) <failed_point_ids> with `workplan point change` \
or `workplan point depends`.

**Problems found:** <rework_reason>"""

CREATION_COMPLETE = """\
Plan creation is complete.

- **Name:** <plan_name>
- **Description:** <plan_short_description>
- **Points:** <plan_points_count>

The plan is ready to be executed point by point."""

PLAN_REWORK = DESCRIPTION_UPDATE_REWORK

REWORK = "Please rework the following plan points: <id>\n\n**Reason:** <point_rework_reason>"
IMPLEMENTATION = "Please implement the following plan points: <id>"
CODE_REVIEW = "Please review the following plan points: <id>"
TESTING = "Please test the following plan points: <id>"
PLAN_REVIEW = "Plan needs to be reviewed.\n\n<checklist>"
PLAN_REVIEW_FAILED = "Plan review failed: <reason>"
ACCEPTANCE = "Please request Approver mode to perform a final acceptance check for the plan."
DONE = "Plan is done. Nothing has to be done."

DEFAULT_PROMPTS: dict[str, str] = {
    "description_update": DESCRIPTION_UPDATE,
    "description_update_rework": DESCRIPTION_UPDATE_REWORK,
    "description_review": DESCRIPTION_REVIEW,
    "description_review_rework": DESCRIPTION_REVIEW_REWORK,
    "architecture_creation": ARCHITECTURE_CREATION,
    "architecture_creation_rework": ARCHITECTURE_CREATION_REWORK,
    "architecture_review": ARCHITECTURE_REVIEW,
    "architecture_review_rework": ARCHITECTURE_REVIEW_REWORK,
    "points_creation": POINTS_CREATION,
    "points_creation_rework": POINTS_CREATION_REWORK,
    "creation_complete": CREATION_COMPLETE,
    "plan_rework": PLAN_REWORK,
    "rework": REWORK,
    "implementation": IMPLEMENTATION,
    "code_review": CODE_REVIEW,
    "testing": TESTING,
    "plan_review": PLAN_REVIEW,
    "plan_review_failed": PLAN_REVIEW_FAILED,
    "acceptance": ACCEPTANCE,
    "done": DONE,
}

DEFAULT_CHECKLISTS: dict[str, str] = {
    "description_review": (
        "* Are the short and long descriptions clear and comprehensive?\n"
        "* Do the descriptions match the original request?\n"
        "* Is the technical scope well defined?"
    ),
    "architecture_review": (
        "* Does every component have a single clear responsibility?\n"
        "* Do the connections cover every data flow the descriptions mention?\n"
        "* Is the architecture consistent with the long description?"
    ),
    "plan_review_points": (
        "* Is the point implemented as its detailed description requires?\n"
        "* Are the expected outputs produced?"
    ),
    "plan_review_plan": (
        "* Does the implementation fulfil the long description?\n"
        "* Is the work consistent with the architecture?"
    ),
}

DEFAULT_MODES: dict[str, str] = {
    "description_update": "Architect",
    "description_review": "Reviewer",
    "architecture_creation": "Architect",
    "architecture_review": "Reviewer",
    "points_creation": "Architect",
    "creation_complete": "Architect",
    "plan_rework": "Architect",
    "rework": "Coder",
    "implementation": "Coder",
    "code_review": "Reviewer",
    "testing": "Tester",
    "plan_review": "Plan Reviewer",
    "acceptance": "Approver",
    "done": "",
}

DEFAULT_CALLBACKS: dict[str, str] = {
    "description_review": "plan.descriptionsReviewed",
    "architecture_review": "plan.architectureReviewed",
    "plan_review": "plan.reviewed",
}
